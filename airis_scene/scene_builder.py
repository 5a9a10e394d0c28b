"""
Scene Builder — DocumentNode 樹 → GeneratedNode 樹

依分類結果決定每個節點的轉換模式：
  - 伺服器算圖（export / substitute）：absolute bounds 轉換、掛 imageRef，不往下展開
  - INSTANCE：留下 placeholder，之後由 ComponentResolver 展開
  - 其餘：relative 轉換，原生重建並往下處理 children

產出三種邏輯根：page、screen、component。
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .classifier import ClassificationMap, RenderTag
from .document import DocumentNode, NodeType
from .document_index import DocumentIndex
from .generated import ComponentPlaceholder, GeneratedNode, SceneRoot
from .paths import NameCounter, Slot, image_fill_path, server_rendered_image_path
from .transform import RectTransform, Vector2, apply_absolute_bounds_transform, apply_figma_transform

logger = logging.getLogger(__name__)


class SceneBuilder:

    def __init__(
        self,
        index: DocumentIndex,
        classification: ClassificationMap,
        center_pivot: bool = True,
        asset_root: str = "Figma",
    ):
        self.index = index
        self.classification = classification
        self.center_pivot = center_pivot
        self.asset_root = asset_root
        self.names = NameCounter()
        self._node_count = 0

    @property
    def node_count(self) -> int:
        return self._node_count

    # ════════════════════════════════════════════════════════════
    # Logical roots
    # ════════════════════════════════════════════════════════════

    def build_pages(self, pages: Iterable[DocumentNode]) -> list[SceneRoot]:
        roots = []
        for page in pages:
            root = GeneratedNode(node_id=page.id, name=page.name)
            for child in page.children:
                generated = self.build_subtree(child, page)
                if generated is not None:
                    root.children.append(generated)
            roots.append(SceneRoot(Slot.PAGE.value, self.names.next_file_name(Slot.PAGE.value, page.name), root))
        return roots

    def build_screens(self, pages: Iterable[DocumentNode]) -> list[SceneRoot]:
        roots = []
        for screen in self.index.screen_nodes(list(pages)):
            if not screen.visible:
                continue
            root = self.build_subtree(screen, None)
            if root is None:
                continue
            root.add_component("ScreenController", bindings={})
            roots.append(SceneRoot(Slot.SCREEN.value, self.names.next_file_name(Slot.SCREEN.value, screen.name), root))
        return roots

    def build_components(self) -> list[tuple[str, SceneRoot]]:
        """文件中所有 COMPONENT 節點（缺漏定義修補後）."""
        built = []
        for node in self.index.find_all_of_type(NodeType.COMPONENT):
            parent = self.index.parent_of(node.id)
            # ComponentSet 內的變體以「set 名稱-變體名稱」命名
            name = f"{parent.name}-{node.name}" if parent is not None and parent.type == NodeType.COMPONENT_SET else node.name
            root = self.build_subtree(node, None)
            if root is None:
                continue
            root.name = name
            file_name = self.names.next_file_name(Slot.COMPONENT.value, name)
            built.append((node.id, SceneRoot(Slot.COMPONENT.value, file_name, root)))
        return built

    # ════════════════════════════════════════════════════════════
    # Node conversion
    # ════════════════════════════════════════════════════════════

    def build_subtree(
        self,
        node: DocumentNode,
        parent: Optional[DocumentNode],
    ) -> Optional[GeneratedNode]:
        """轉換一棵文件子樹；parent 為 None 時 root 放在原點."""
        if not node.visible:
            return None
        root = self._convert(node, parent)
        if parent is None:
            # 邏輯根：保留尺寸，位置歸零
            root.transform = RectTransform(size_delta=Vector2(node.resolved_size.x, node.resolved_size.y))
        stack = [(node, root)]
        while stack:
            doc_node, generated = stack.pop()
            if not self._should_descend(generated):
                continue
            for child in doc_node.children:
                if not child.visible:
                    continue
                converted = self._convert(child, doc_node)
                generated.children.append(converted)
                stack.append((child, converted))
        return root

    @staticmethod
    def _should_descend(generated: GeneratedNode) -> bool:
        return generated.image_ref is None and generated.placeholder is None

    def _convert(self, node: DocumentNode, parent: Optional[DocumentNode]) -> GeneratedNode:
        self._node_count += 1
        generated = GeneratedNode(node_id=node.id, name=node.name)
        tag = self.classification.tag_for(node.id)

        if tag != RenderTag.NATIVE_RECONSTRUCT:
            apply_absolute_bounds_transform(node, parent, self.center_pivot, rect=generated.transform)
            generated.image_ref = node.id
            generated.add_component(
                "Image",
                sprite=server_rendered_image_path(
                    node.id, node.name, tag == RenderTag.SERVER_EXPORT, root=self.asset_root
                ),
            )
            return generated

        apply_figma_transform(node, parent, self.center_pivot, rect=generated.transform)

        if node.type == NodeType.INSTANCE:
            generated.placeholder = ComponentPlaceholder(
                component_id=node.component_id or "",
                node_id=node.id,
                parent_node_id=parent.id if parent is not None else None,
            )
            generated.component_ref = node.component_id
            return generated

        if node.type == NodeType.COMPONENT:
            generated.component_ref = node.id

        image_refs = [p.image_ref for p in node.fills if p.type == "IMAGE" and p.image_ref and p.visible]
        if image_refs:
            generated.fill_image_refs = image_refs
            generated.add_component("Image", sprite=image_fill_path(image_refs[0], root=self.asset_root))

        if node.type == NodeType.TEXT:
            generated.add_component("Text", characters=node.characters or "")

        return generated
