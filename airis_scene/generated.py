"""
GeneratedNode — 本地場景樹（交給原生 UI 後端實體化）

每個節點掛載多個 ComponentData（依 kind 區分的屬性袋），
合併引擎以明確的欄位清單逐欄複製，而非反射。
"""

from __future__ import annotations

import copy
import numbers
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from .transform import RectTransform

# 已知 component kind 的欄位與預設值；未列出的 kind 視為使用者自訂（無預設）
COMPONENT_DEFAULTS: dict[str, dict[str, Any]] = {
    "Image": {
        "sprite": None,
        "color": [1.0, 1.0, 1.0, 1.0],
        "raycast_target": True,
        "preserve_aspect": False,
    },
    "Text": {
        "characters": "",
        "font_family": "",
        "font_size": 14.0,
        "color": [0.0, 0.0, 0.0, 1.0],
        "alignment": "LEFT",
    },
    "Button": {
        "target_node_id": None,
        "interactable": True,
    },
    "LayoutGroup": {
        "direction": None,
        "spacing": 0.0,
        "padding": [0.0, 0.0, 0.0, 0.0],
    },
    "ScreenController": {
        "screen_name": "",
        "bindings": {},
    },
}

# 由產生流程擁有、不可從備份回寫的欄位
READ_ONLY_FIELDS: dict[str, frozenset] = {
    "ScreenController": frozenset({"screen_name"}),
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)) and len(value) == 0:
        return True
    return False


@dataclass
class ComponentData:
    """依 kind 區分、欄位明確的屬性袋."""
    kind: str
    fields: dict = field(default_factory=dict)

    @property
    def schema(self) -> Optional[dict]:
        return COMPONENT_DEFAULTS.get(self.kind)

    def field_names(self) -> list[str]:
        names = list(self.schema or {})
        names.extend(k for k in self.fields if k not in names)
        return names

    def default_for(self, name: str) -> Any:
        return copy.deepcopy((self.schema or {}).get(name))

    def get(self, name: str, default: Any = None) -> Any:
        if name in self.fields:
            return self.fields[name]
        schema = self.schema
        if schema is not None and name in schema:
            return self.default_for(name)
        return default

    def is_default(self, name: str) -> bool:
        value = self.get(name)
        if _is_empty(value):
            return True
        schema = self.schema
        return schema is not None and name in schema and value == schema[name]

    def set(self, name: str, value: Any) -> None:
        """型別檢查的 setter；不合法寫入拋 AttributeError / TypeError."""
        if name in READ_ONLY_FIELDS.get(self.kind, ()):
            raise AttributeError(f"{self.kind}.{name} is read-only")
        schema = self.schema
        if schema is not None:
            if name not in schema:
                raise AttributeError(f"{self.kind} has no field '{name}'")
            expected = schema[name]
            if expected is not None and value is not None and not _same_type(expected, value):
                raise TypeError(
                    f"{self.kind}.{name} expects {type(expected).__name__}, got {type(value).__name__}"
                )
        self.fields[name] = value

    def to_dict(self) -> dict:
        return {"kind": self.kind, "fields": copy.deepcopy(self.fields)}


def _same_type(expected: Any, value: Any) -> bool:
    if isinstance(expected, bool) or isinstance(value, bool):
        return isinstance(expected, bool) and isinstance(value, bool)
    if isinstance(expected, numbers.Real):
        return isinstance(value, numbers.Real)
    return isinstance(value, type(expected))


@dataclass
class ComponentPlaceholder:
    """標記元件 instance 需要展開的位置."""
    component_id: str
    node_id: str
    parent_node_id: Optional[str] = None


@dataclass
class GeneratedNode:
    node_id: str
    name: str
    children: list = field(default_factory=list)
    transform: RectTransform = field(default_factory=RectTransform)
    component_ref: Optional[str] = None
    image_ref: Optional[str] = None
    fill_image_refs: list = field(default_factory=list)
    components: dict = field(default_factory=dict)
    placeholder: Optional[ComponentPlaceholder] = None
    prefab_source: Optional[str] = None

    # ── Tree helpers ─────────────────────────────────────

    def walk(self) -> Iterator["GeneratedNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_child(self, name: str) -> Optional["GeneratedNode"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def add_child(self, child: "GeneratedNode", index: Optional[int] = None) -> None:
        if index is None or index >= len(self.children):
            self.children.append(child)
        else:
            self.children.insert(max(index, 0), child)

    def deep_copy(self) -> "GeneratedNode":
        """整棵樹深拷貝（明確堆疊，不受遞迴上限影響）."""
        root = self._copy_shallow()
        stack = [(self, root)]
        while stack:
            source, target = stack.pop()
            for child in source.children:
                child_copy = child._copy_shallow()
                target.children.append(child_copy)
                stack.append((child, child_copy))
        return root

    def _copy_shallow(self) -> "GeneratedNode":
        # children 由呼叫端補上
        return GeneratedNode(
            node_id=self.node_id,
            name=self.name,
            transform=copy.copy(self.transform),
            component_ref=self.component_ref,
            image_ref=self.image_ref,
            fill_image_refs=list(self.fill_image_refs),
            components={k: ComponentData(c.kind, copy.deepcopy(c.fields)) for k, c in self.components.items()},
            placeholder=copy.copy(self.placeholder),
            prefab_source=self.prefab_source,
        )

    def component(self, kind: str) -> Optional[ComponentData]:
        return self.components.get(kind)

    def add_component(self, kind: str, **fields) -> ComponentData:
        data = self.components.get(kind)
        if data is None:
            data = ComponentData(kind)
            self.components[kind] = data
        for name, value in fields.items():
            data.set(name, value)
        return data

    def count(self) -> int:
        return sum(1 for _ in self.walk())

    # ── JSON snapshot ──────────────────────────────────

    def _own_dict(self) -> dict:
        data: dict = {
            "nodeId": self.node_id,
            "name": self.name,
            "transform": self.transform.to_dict(),
        }
        if self.component_ref:
            data["componentRef"] = self.component_ref
        if self.image_ref:
            data["imageRef"] = self.image_ref
        if self.fill_image_refs:
            data["fillImageRefs"] = list(self.fill_image_refs)
        if self.components:
            data["components"] = [c.to_dict() for c in self.components.values()]
        if self.placeholder:
            data["placeholder"] = {
                "componentId": self.placeholder.component_id,
                "nodeId": self.placeholder.node_id,
                "parentNodeId": self.placeholder.parent_node_id,
            }
        if self.prefab_source:
            data["prefabSource"] = self.prefab_source
        return data

    def to_dict(self) -> dict:
        root = self._own_dict()
        stack = [(self, root)]
        while stack:
            node, data = stack.pop()
            if not node.children:
                continue
            data["children"] = []
            for child in node.children:
                child_data = child._own_dict()
                data["children"].append(child_data)
                stack.append((child, child_data))
        return root

    @classmethod
    def _from_own_dict(cls, data: dict) -> "GeneratedNode":
        placeholder = None
        if data.get("placeholder"):
            p = data["placeholder"]
            placeholder = ComponentPlaceholder(p["componentId"], p["nodeId"], p.get("parentNodeId"))
        components = {}
        for raw in data.get("components", []):
            components[raw["kind"]] = ComponentData(raw["kind"], dict(raw.get("fields", {})))
        return cls(
            node_id=data.get("nodeId", ""),
            name=data.get("name", ""),
            transform=RectTransform.from_dict(data.get("transform", {})),
            component_ref=data.get("componentRef"),
            image_ref=data.get("imageRef"),
            fill_image_refs=list(data.get("fillImageRefs", [])),
            components=components,
            placeholder=placeholder,
            prefab_source=data.get("prefabSource"),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "GeneratedNode":
        root = cls._from_own_dict(data)
        stack = [(data, root)]
        while stack:
            raw, node = stack.pop()
            for raw_child in raw.get("children", []):
                child = cls._from_own_dict(raw_child)
                node.children.append(child)
                stack.append((raw_child, child))
        return root

    def to_records(self) -> list[dict]:
        """前序攤平成節點清單，以 "parent" 索引表示階層（root 為 -1）.

        JSON 快照用這個格式，巢狀深度與樹高無關。
        """
        records: list[dict] = []
        stack = [(self, -1)]
        while stack:
            node, parent_index = stack.pop()
            data = node._own_dict()
            data["parent"] = parent_index
            index = len(records)
            records.append(data)
            stack.extend((child, index) for child in reversed(node.children))
        return records

    @classmethod
    def from_records(cls, records: list) -> "GeneratedNode":
        if not records:
            raise ValueError("Snapshot has no nodes")
        nodes: list[GeneratedNode] = []
        for data in records:
            node = cls._from_own_dict(data)
            parent_index = data.get("parent", -1)
            if nodes and not 0 <= parent_index < len(nodes):
                raise ValueError(f"Snapshot node '{node.name}' has invalid parent {parent_index}")
            if nodes:
                nodes[parent_index].children.append(node)
            nodes.append(node)
        return nodes[0]


def preview_scene_tree(node: GeneratedNode, indent: int = 0) -> str:
    """除錯用：印出產生的場景樹."""
    lines = []
    stack = [(node, indent)]
    while stack:
        current, depth = stack.pop()
        label = f"{'  ' * depth}├─ {current.name}  [{current.node_id}]"
        if current.placeholder:
            label += f"  <placeholder {current.placeholder.component_id}>"
        elif current.prefab_source:
            label += f"  <{current.prefab_source}>"
        elif current.image_ref:
            label += f"  <image {current.image_ref}>"
        lines.append(label)
        stack.extend((child, depth + 1) for child in reversed(current.children))
    return "\n".join(lines)


@dataclass
class SceneRoot:
    """單一邏輯 root（page / screen / component）與其檔名."""
    slot: str
    file_name: str
    root: GeneratedNode

    @property
    def key(self) -> tuple:
        return (self.slot, self.file_name)
