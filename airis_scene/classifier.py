"""
Render Classifier — 決定每個節點是原生重建，還是交給 Figma 伺服器算圖

規則（先符合者優先）：
  1. 已有定義的 Instance、或不可見節點 → 略過，不往下走
  2. 已選頁面 / 元件定義內、depth == 1、有 exportSettings → SERVER_EXPORT
  3. 元件定義內且符合替代條件 → SERVER_SUBSTITUTE
  4. 其餘 → 遞迴處理 children（遇到 COMPONENT 之後標記為元件定義內）

走訪使用顯式 stack，避免極深的設計樹觸發遞迴上限。
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional

from .document import DocumentNode, FigmaDocument, NodeType

logger = logging.getLogger(__name__)


class RenderTag(str, Enum):
    NATIVE_RECONSTRUCT = "native"
    SERVER_EXPORT = "export"
    SERVER_SUBSTITUTE = "substitute"


# 可整棵交給伺服器算圖的節點類型；至少要有一個 VECTOR
VECTOR_RENDER_TYPES = (
    NodeType.VECTOR,
    NodeType.GROUP,
    NodeType.FRAME,
    NodeType.COMPONENT,
    NodeType.INSTANCE,
)

RENDER_NAME_KEYWORD = "render"


@dataclass(frozen=True)
class TraversalContext:
    """分類走訪時由上往下繼承的旗標."""
    depth: int = 0
    within_component_definition: bool = False
    is_selected_page: bool = False

    def descend(self, node: DocumentNode) -> "TraversalContext":
        return replace(
            self,
            depth=self.depth + 1,
            within_component_definition=(
                self.within_component_definition or node.type == NodeType.COMPONENT
            ),
        )


@dataclass(frozen=True)
class ServerRenderNode:
    node: DocumentNode
    render_type: RenderTag


class ClassificationMap:
    """id → RenderTag；未走訪的 id 視為 NATIVE_RECONSTRUCT."""

    def __init__(self, tags: Optional[dict] = None):
        self._tags: dict[str, RenderTag] = dict(tags or {})

    def __setitem__(self, node_id: str, tag: RenderTag) -> None:
        self._tags[node_id] = tag

    def __getitem__(self, node_id: str) -> RenderTag:
        return self._tags[node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._tags

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClassificationMap):
            return NotImplemented
        return self._tags == other._tags

    def tag_for(self, node_id: str) -> RenderTag:
        return self._tags.get(node_id, RenderTag.NATIVE_RECONSTRUCT)

    def is_server_rendered(self, node_id: str) -> bool:
        return self.tag_for(node_id) != RenderTag.NATIVE_RECONSTRUCT

    def is_substitution(self, node_id: str) -> bool:
        return self.tag_for(node_id) == RenderTag.SERVER_SUBSTITUTE

    def ids_with(self, tag: RenderTag) -> list[str]:
        return [node_id for node_id, t in self._tags.items() if t == tag]

    def as_dict(self) -> dict[str, str]:
        return {node_id: tag.value for node_id, tag in self._tags.items()}


def subtree_exclusively_of_types(node: DocumentNode, allowed: Iterable[NodeType]) -> tuple[bool, Counter]:
    """單次掃描：驗證整棵子樹只含 allowed 類型，並統計各類型數量.

    任何不允許的類型出現即回傳 False（整棵不可替代）。
    """
    allowed = tuple(allowed)
    counts: Counter = Counter()
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type not in allowed:
            return False, counts
        counts[current.type] += 1
        stack.extend(reversed(current.children))
    return True, counts


def is_substitution_candidate(node: DocumentNode, depth: int) -> bool:
    """可替換判定（只在元件定義內才有意義）."""
    if node.type == NodeType.CANVAS:
        return False
    if depth <= 1 and node.type == NodeType.FRAME:
        return False
    if RENDER_NAME_KEYWORD in node.name.lower():
        return True
    if node.type in (NodeType.VECTOR, NodeType.BOOLEAN_OPERATION):
        return True
    only_valid, counts = subtree_exclusively_of_types(node, VECTOR_RENDER_TYPES)
    return only_valid and counts[NodeType.VECTOR] > 0


class RenderClassifier:
    """將走訪到的節點標記為 native 或伺服器算圖（export / substitute）."""

    def __init__(
        self,
        missing_component_ids: Iterable[str] = (),
        selected_page_ids: Iterable[str] = (),
        render_only_selected_pages: bool = False,
    ):
        self.missing_component_ids = set(missing_component_ids)
        self.selected_page_ids = set(selected_page_ids)
        self.render_only_selected_pages = render_only_selected_pages

    def _pages(self, root: DocumentNode) -> list[tuple[DocumentNode, bool]]:
        pages = []
        for page in root.children:
            is_selected = page.id in self.selected_page_ids
            if self.render_only_selected_pages and not is_selected:
                continue
            pages.append((page, is_selected))
        return pages

    def _walk(self, root: DocumentNode):
        """逐一產生 (node, context, tag 或 None)."""
        for page, is_selected in self._pages(root):
            stack = [(page, TraversalContext(0, False, is_selected))]
            while stack:
                node, ctx = stack.pop()
                if not node.visible:
                    continue
                if node.type == NodeType.INSTANCE and node.component_id not in self.missing_component_ids:
                    continue
                if (
                    (ctx.is_selected_page or ctx.within_component_definition)
                    and ctx.depth == 1
                    and node.export_settings
                ):
                    logger.debug("Found node with export settings: %s", node.name)
                    yield node, ctx, RenderTag.SERVER_EXPORT
                    continue
                if ctx.within_component_definition and is_substitution_candidate(node, ctx.depth):
                    yield node, ctx, RenderTag.SERVER_SUBSTITUTE
                    continue
                yield node, ctx, None
                child_ctx = ctx.descend(node)
                for child in reversed(node.children):
                    stack.append((child, child_ctx))

    def classify(self, document) -> ClassificationMap:
        root = document.document if isinstance(document, FigmaDocument) else document
        result = ClassificationMap()
        for node, _, tag in self._walk(root):
            result[node.id] = tag or RenderTag.NATIVE_RECONSTRUCT
        return result

    def server_render_nodes(self, document) -> list[ServerRenderNode]:
        root = document.document if isinstance(document, FigmaDocument) else document
        return [ServerRenderNode(node, tag) for node, _, tag in self._walk(root) if tag is not None]


def image_fill_ids(
    document,
    selected_page_ids: Iterable[str] = (),
    only_selected_pages: bool = False,
) -> list[str]:
    """收集需下載的 image fill id（去重，保留首次出現順序）.

    頁面根層（depth <= 1）非 FRAME / COMPONENT 的零散圖片視為參考圖而略過；
    未選取的頁面只收元件定義內的 fill。
    """
    root = document.document if isinstance(document, FigmaDocument) else document
    selected = set(selected_page_ids)
    found: dict[str, None] = {}
    for page in root.children:
        included_page = page.id in selected
        if only_selected_pages and not included_page:
            continue
        stack = [(page, 0, False)]
        while stack:
            node, depth, within_component = stack.pop()
            ignore_fill = depth <= 1 and node.type not in (NodeType.FRAME, NodeType.COMPONENT)
            if not included_page and not within_component:
                ignore_fill = True
            if not ignore_fill:
                for paint in node.fills:
                    if paint.type != "IMAGE" or not paint.image_ref:
                        continue
                    found.setdefault(paint.image_ref, None)
            if node.type == NodeType.COMPONENT:
                within_component = True
            for child in reversed(node.children):
                stack.append((child, depth + 1, within_component))
    return list(found)
