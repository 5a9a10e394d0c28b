"""
Component Resolver — Instance ↔ Component 對應、缺漏定義修補、巢狀元件展開

缺少定義的 component id：第一個找到的 Instance 升格為 COMPONENT，
其餘 Instance 改指向它（結果與走訪順序有關）。
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .classifier import ClassificationMap
from .document import DocumentNode, FigmaDocument, NodeType
from .document_index import DocumentIndex
from .generated import GeneratedNode, SceneRoot
from .transform import apply_absolute_bounds_transform, apply_figma_transform

logger = logging.getLogger(__name__)

INSTANCE_ID_SEPARATOR = ";"


# ════════════════════════════════════════════════════════════
# Missing definitions
# ════════════════════════════════════════════════════════════

def find_missing_component_definitions(
    figma_document: FigmaDocument,
    index: DocumentIndex,
    selected_nodes: Optional[Iterable[DocumentNode]] = None,
) -> list[str]:
    """被引用但在可及範圍內找不到 COMPONENT 節點的 component id（保留首見順序）."""
    starts = list(selected_nodes) if selected_nodes is not None else [index.root]
    defined: set = set()
    referenced: dict[str, None] = dict.fromkeys(figma_document.components)
    for start in starts:
        for node, _ in index.walk(start):
            if node.type == NodeType.COMPONENT:
                defined.add(node.id)
            elif node.type == NodeType.INSTANCE and node.component_id:
                referenced.setdefault(node.component_id, None)
    return [cid for cid in referenced if cid not in defined]


@dataclass
class Promotion:
    component_id: str
    promoted_node_id: str
    remapped_node_ids: list = field(default_factory=list)


def replace_missing_components(index: DocumentIndex, missing_component_ids: Iterable[str]) -> list[Promotion]:
    """升格第一個 Instance 為定義，其餘改指向它；以新節點值寫回 index."""
    promotions = []
    for component_id in missing_component_ids:
        instances = index.find_component_instances(component_id)
        if not instances:
            continue
        first = index.lookup(instances[0].id)
        index.replace(dataclasses.replace(first, type=NodeType.COMPONENT))
        promotion = Promotion(component_id, first.id)
        for other in instances[1:]:
            current = index.lookup(other.id)
            index.replace(dataclasses.replace(current, component_id=first.id))
            promotion.remapped_node_ids.append(other.id)
        logger.info(
            "Promoted instance %s to component for missing definition %s (%d remapped)",
            first.id, component_id, len(promotion.remapped_node_ids),
        )
        promotions.append(promotion)
    return promotions


# ════════════════════════════════════════════════════════════
# Library
# ════════════════════════════════════════════════════════════

class ComponentLibrary:
    """component id → 產生的元件定義（可重用 asset）."""

    def __init__(self):
        self._by_id: dict[str, SceneRoot] = {}
        self._by_file_name: dict[str, SceneRoot] = {}

    def register(self, component_id: str, scene_root: SceneRoot) -> None:
        self._by_id[component_id] = scene_root
        self._by_file_name[scene_root.file_name] = scene_root

    def get(self, component_id: str) -> Optional[SceneRoot]:
        return self._by_id.get(component_id)

    def has_asset(self, file_name: str) -> bool:
        return file_name in self._by_file_name

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, component_id: object) -> bool:
        return component_id in self._by_id

    def component_ids(self) -> list[str]:
        return list(self._by_id)

    def scene_roots(self) -> list[SceneRoot]:
        return list(self._by_id.values())

    def instantiate(self, component_id: str) -> Optional[GeneratedNode]:
        entry = self._by_id.get(component_id)
        return self._instance_of(entry) if entry else None

    def instantiate_asset(self, file_name: str) -> Optional[GeneratedNode]:
        entry = self._by_file_name.get(file_name)
        return self._instance_of(entry) if entry else None

    @staticmethod
    def _instance_of(entry: SceneRoot) -> GeneratedNode:
        instance = entry.root.deep_copy()
        instance.prefab_source = entry.file_name
        return instance


# ════════════════════════════════════════════════════════════
# Resolver
# ════════════════════════════════════════════════════════════

def instance_local_id(node_id: str) -> str:
    """Instance 內節點 id 以 ';' 串接路徑，比對時只取最後一段."""
    return node_id.split(INSTANCE_ID_SEPARATOR)[-1]


def find_matching_child(child_node: DocumentNode, parent: GeneratedNode) -> Optional[GeneratedNode]:
    local_id = instance_local_id(child_node.id)
    for child in parent.children:
        if instance_local_id(child.node_id) == local_id:
            return child
    return None


class ComponentResolver:

    def __init__(
        self,
        index: DocumentIndex,
        classification: ClassificationMap,
        library: ComponentLibrary,
        center_pivot: bool = True,
    ):
        self.index = index
        self.classification = classification
        self.library = library
        self.center_pivot = center_pivot
        self._expanded: set = set()
        self._in_progress: set = set()
        self.unresolved: list[str] = []
        self.skipped_children = 0

    def instantiate_all(
        self,
        screens: Iterable[SceneRoot] = (),
        pages: Iterable[SceneRoot] = (),
    ) -> None:
        """展開 placeholder：先元件定義，再 screen 與 page."""
        for component_id in self.library.component_ids():
            self._ensure_expanded(component_id)
        for scene_root in list(screens) + list(pages):
            self.instantiate_in(scene_root.root)

    def _ensure_expanded(self, component_id: str) -> None:
        # 巢狀元件：先展開被引用的定義（深度優先）
        if component_id in self._expanded or component_id in self._in_progress:
            return
        entry = self.library.get(component_id)
        if entry is None:
            return
        self._in_progress.add(component_id)
        self.instantiate_in(entry.root)
        self._in_progress.discard(component_id)
        self._expanded.add(component_id)

    def _pending_placeholders(self, root: GeneratedNode) -> list[tuple[GeneratedNode, GeneratedNode]]:
        """尚未位於已展開 prefab 內的 (placeholder, parent) 配對."""
        found = []
        stack = [(root, False)]
        while stack:
            node, inside_prefab = stack.pop()
            inside = inside_prefab or (node is not root and node.prefab_source is not None)
            for child in reversed(node.children):
                child_inside = inside or child.prefab_source is not None
                if child.placeholder is not None and not child_inside:
                    found.append((child, node))
                stack.append((child, inside))
        found.reverse()
        return found

    def instantiate_in(self, root: GeneratedNode) -> int:
        count = 0
        for placeholder, parent in self._pending_placeholders(root):
            marker = placeholder.placeholder
            self._ensure_expanded(marker.component_id)
            instance = self.library.instantiate(marker.component_id)
            if instance is None:
                logger.debug("No component definition for %s (placeholder %s)", marker.component_id, placeholder.name)
                self.unresolved.append(placeholder.node_id)
                continue

            instance.transform.copy_from(placeholder.transform)
            instance.name = placeholder.name
            instance.node_id = marker.node_id
            instance.component_ref = marker.component_id
            sibling_index = next(i for i, c in enumerate(parent.children) if c is placeholder)
            parent.children[sibling_index] = instance
            self._bind_to_parent(parent, instance)

            node = self.index.lookup(marker.node_id)
            parent_node = self.index.lookup(marker.parent_node_id) if marker.parent_node_id else None
            if node is not None:
                self.apply_figma_properties(node, instance, parent_node)
            count += 1
        return count

    @staticmethod
    def _bind_to_parent(parent: GeneratedNode, instance: GeneratedNode) -> None:
        controller = parent.component("ScreenController")
        if controller is None:
            return
        bindings = dict(controller.get("bindings") or {})
        bindings[instance.name] = instance.node_id
        controller.set("bindings", bindings)

    def _is_substitution(self, node: DocumentNode, generated: GeneratedNode) -> bool:
        # 元件實例本身被分類為替代，或原始元件節點已是算圖結果
        return self.classification.is_server_rendered(node.id) or generated.image_ref is not None

    def apply_figma_properties(
        self,
        node: DocumentNode,
        generated: GeneratedNode,
        parent: Optional[DocumentNode],
    ) -> None:
        """把 instance 的覆寫（文字、位置等）套用到已實體化的元件子樹."""
        stack = [(node, generated, parent)]
        while stack:
            doc_node, target, doc_parent = stack.pop()
            if self._is_substitution(doc_node, target):
                apply_absolute_bounds_transform(doc_node, doc_parent, self.center_pivot, rect=target.transform)
                continue

            try:
                self._apply_node_properties(doc_node, target)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(
                    "Exception applying properties for node '%s' - %s",
                    self.index.full_path(doc_node), e,
                )
            apply_figma_transform(doc_node, doc_parent, self.center_pivot, rect=target.transform)

            for child_node in doc_node.children:
                match = find_matching_child(child_node, target)
                if match is None:
                    logger.debug(
                        "Applying properties - could not find child %s (%s) of node %s in '%s'",
                        child_node.id, child_node.name, doc_node.id, target.name,
                    )
                    self.skipped_children += 1
                    continue
                stack.append((child_node, match, doc_node))

    @staticmethod
    def _apply_node_properties(node: DocumentNode, target: GeneratedNode) -> None:
        if node.type == NodeType.TEXT and node.characters is not None:
            target.add_component("Text", characters=node.characters)
        if not node.visible:
            target.add_component("Visibility", active=False)

    def remove_placeholder_markers(self, roots: Iterable[SceneRoot]) -> int:
        """清除剩餘的 placeholder 標記（找不到定義者保留為空節點）."""
        removed = 0
        for scene_root in roots:
            for node in scene_root.root.walk():
                if node.placeholder is not None:
                    node.placeholder = None
                    removed += 1
        if removed:
            logger.info("Removed %d unresolved component placeholders", removed)
        return removed
