"""
備份快照存放

以 (slot, 檔名) 對應上一輪產生的樹；只在新一輪產生成功後才覆寫。
JsonBackupStore 將快照寫成 <root>/Backup/<Slot>/<檔名>.json。
"""

from __future__ import annotations

import json
import logging
import os
from typing import Iterable, Optional

from .generated import GeneratedNode
from .paths import Slot, slot_folder

logger = logging.getLogger(__name__)


def snapshot_to_json(root: GeneratedNode) -> dict:
    """快照 JSON：攤平的節點清單（深層樹也不會超過 json 的巢狀上限）."""
    return {"nodes": root.to_records()}


def snapshot_from_json(data) -> GeneratedNode:
    if not isinstance(data, dict) or not isinstance(data.get("nodes"), list):
        raise ValueError("Snapshot JSON has no 'nodes' list")
    return GeneratedNode.from_records(data["nodes"])


class BackupStore:
    """以邏輯 root 為 key 的記憶體備份."""

    def __init__(self):
        self._snapshots: dict[tuple[str, str], GeneratedNode] = {}

    def get(self, slot: str, file_name: str) -> Optional[GeneratedNode]:
        return self._snapshots.get((Slot(slot).value, file_name))

    def put(self, slot: str, file_name: str, root: GeneratedNode) -> None:
        self._snapshots[(Slot(slot).value, file_name)] = root.deep_copy()

    def keys(self) -> list[tuple[str, str]]:
        return list(self._snapshots)

    def clear(self) -> None:
        self._snapshots.clear()

    def supersede(self, roots: Iterable[tuple[str, str, GeneratedNode]]) -> None:
        """以本輪產出整批取代舊快照."""
        self.clear()
        for slot, file_name, root in roots:
            self.put(slot, file_name, root)


class JsonBackupStore(BackupStore):
    """每個邏輯 root 存成一個 JSON 檔的備份."""

    def __init__(self, root_dir: str):
        super().__init__()
        self.root_dir = root_dir
        self._load()

    def _folder(self, slot: str) -> str:
        return os.path.join(self.root_dir, *slot_folder(slot, root="", backup=True).strip("/").split("/"))

    def _load(self) -> None:
        for slot in Slot:
            folder = self._folder(slot.value)
            if not os.path.isdir(folder):
                continue
            for filename in sorted(os.listdir(folder)):
                if not filename.endswith(".json"):
                    continue
                path = os.path.join(folder, filename)
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        root = snapshot_from_json(json.load(f))
                except (OSError, ValueError, KeyError, TypeError) as e:
                    logger.warning("Skipping unreadable backup %s: %s", path, e)
                    continue
                self._snapshots[(slot.value, filename[: -len(".json")])] = root

    def put(self, slot: str, file_name: str, root: GeneratedNode) -> None:
        super().put(slot, file_name, root)
        folder = self._folder(slot)
        os.makedirs(folder, exist_ok=True)
        path = os.path.join(folder, f"{file_name}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot_to_json(root), f, indent=2, ensure_ascii=False)

    def clear(self) -> None:
        for slot, file_name in self.keys():
            path = os.path.join(self._folder(slot), f"{file_name}.json")
            if os.path.exists(path):
                os.remove(path)
        super().clear()
