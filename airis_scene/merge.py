"""
Delta / Merge Engine — 新產生的樹 × 上一輪備份

保留使用者在上一輪產出上做的手動修改：
  1. 備份有、新樹沒有的 component → 整個加上（含所有欄位）
  2. 兩邊都有的 component → 新樹欄位仍為預設值時才以備份值填補
  3. children 以名稱配對，遞迴套用 1–4
  4. 備份中找不到同名新節點的 child → 重新掛回原本的 sibling index
     （可重用資產的實例重新實體化，否則整棵深拷貝）

單一欄位複製失敗只記錄並略過，不中斷其他欄位或節點。
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .components import ComponentLibrary
from .generated import ComponentData, GeneratedNode, SceneRoot

logger = logging.getLogger(__name__)

FIELD_COPY_ERRORS = (AttributeError, TypeError, ValueError, KeyError)


class PlanAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    PRESERVE = "preserve"
    REMOVE = "remove"


@dataclass
class MergeReport:
    components_added: int = 0
    fields_filled: int = 0
    children_reattached: int = 0
    field_errors: int = 0
    preserved_paths: list = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.components_added or self.fields_filled or self.children_reattached)

    def to_dict(self) -> dict:
        return {
            "componentsAdded": self.components_added,
            "fieldsFilled": self.fields_filled,
            "childrenReattached": self.children_reattached,
            "fieldErrors": self.field_errors,
            "preservedPaths": list(self.preserved_paths),
        }


@dataclass
class PlanEntry:
    action: PlanAction
    slot: str
    file_name: str
    path: str = ""
    report: Optional[MergeReport] = None

    def to_dict(self) -> dict:
        data = {"action": self.action.value, "slot": self.slot, "fileName": self.file_name}
        if self.path:
            data["path"] = self.path
        if self.report is not None:
            data["report"] = self.report.to_dict()
        return data


@dataclass
class ReconciliationPlan:
    entries: list = field(default_factory=list)

    def add(self, entry: PlanEntry) -> None:
        self.entries.append(entry)

    def actions(self, action: PlanAction) -> list[PlanEntry]:
        return [e for e in self.entries if e.action == action]

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in PlanAction}
        for entry in self.entries:
            counts[entry.action.value] += 1
        return counts

    def to_dict(self) -> dict:
        return {"summary": self.summary(), "entries": [e.to_dict() for e in self.entries]}


class DeltaMerger:

    def __init__(self, asset_library: Optional[ComponentLibrary] = None):
        self.asset_library = asset_library
        self._locks: dict = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: tuple) -> threading.Lock:
        with self._locks_guard:
            return self._locks[key]

    # ── Component fields ──────────────────────────────────

    def _copy_field(self, source: ComponentData, target: ComponentData, name: str, report: MergeReport) -> bool:
        try:
            target.set(name, copy.deepcopy(source.get(name)))
        except FIELD_COPY_ERRORS as e:
            logger.debug("Could not copy %s.%s: %s", source.kind, name, e)
            report.field_errors += 1
            return False
        return True

    def merge_components(self, backup: GeneratedNode, fresh: GeneratedNode, report: MergeReport) -> None:
        for kind, backup_data in backup.components.items():
            fresh_data = fresh.components.get(kind)
            if fresh_data is None:
                # 新樹沒有的 component 整個帶過來，唯讀欄位也一併保留
                fresh.components[kind] = ComponentData(kind, copy.deepcopy(backup_data.fields))
                report.components_added += 1
                continue
            for name in backup_data.fields:
                try:
                    fill = fresh_data.is_default(name) and not backup_data.is_default(name)
                except FIELD_COPY_ERRORS as e:
                    logger.debug("Could not read %s.%s: %s", kind, name, e)
                    report.field_errors += 1
                    continue
                if fill and self._copy_field(backup_data, fresh_data, name, report):
                    report.fields_filled += 1

    # ── Tree ─────────────────────────────────────────────

    def _reattach(self, backup_child: GeneratedNode, fresh_parent: GeneratedNode, index: int) -> GeneratedNode:
        restored = None
        library = self.asset_library
        if backup_child.prefab_source and library is not None and library.has_asset(backup_child.prefab_source):
            restored = library.instantiate_asset(backup_child.prefab_source)
            if restored is not None:
                restored.name = backup_child.name
                restored.node_id = backup_child.node_id
                restored.transform.copy_from(backup_child.transform)
        if restored is None:
            restored = backup_child.deep_copy()
        fresh_parent.add_child(restored, index)
        return restored

    def merge(self, fresh: GeneratedNode, backup: Optional[GeneratedNode]) -> MergeReport:
        """將備份就地合併進新產生的樹."""
        report = MergeReport()
        if backup is None:
            return report
        stack = [(fresh, backup, fresh.name)]
        while stack:
            fresh_node, backup_node, path = stack.pop()
            self.merge_components(backup_node, fresh_node, report)
            original_children = list(fresh_node.children)
            for index, backup_child in enumerate(backup_node.children):
                match = next((c for c in original_children if c.name == backup_child.name), None)
                if match is not None:
                    stack.append((match, backup_child, f"{path}/{match.name}"))
                    continue
                self._reattach(backup_child, fresh_node, index)
                report.children_reattached += 1
                report.preserved_paths.append(f"{path}/{backup_child.name}")
        return report

    def reconcile(self, fresh_roots: Iterable[SceneRoot], backup_store) -> ReconciliationPlan:
        """依 (slot, 檔名) 配對新樹與備份並合併."""
        plan = ReconciliationPlan()
        fresh_keys = set()
        for scene_root in fresh_roots:
            fresh_keys.add(scene_root.key)
            backup = backup_store.get(scene_root.slot, scene_root.file_name) if backup_store is not None else None
            if backup is None:
                plan.add(PlanEntry(PlanAction.CREATE, scene_root.slot, scene_root.file_name))
                continue
            with self._lock_for(scene_root.key):
                report = self.merge(scene_root.root, backup)
            plan.add(PlanEntry(PlanAction.UPDATE, scene_root.slot, scene_root.file_name, report=report))
            for preserved in report.preserved_paths:
                plan.add(PlanEntry(PlanAction.PRESERVE, scene_root.slot, scene_root.file_name, path=preserved))
            if report.field_errors:
                logger.warning(
                    "%d field(s) could not be merged for %s/%s",
                    report.field_errors, scene_root.slot, scene_root.file_name,
                )
        if backup_store is not None:
            for slot, file_name in backup_store.keys():
                if (slot, file_name) not in fresh_keys:
                    plan.add(PlanEntry(PlanAction.REMOVE, slot, file_name))
        return plan
