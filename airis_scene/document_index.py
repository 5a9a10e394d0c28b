"""
Document Index — id → 節點查表與祖先路徑查詢

每次匯入只建一次。唯一的例外是元件修補（Instance → Component），
透過 replace() 以新節點值改寫，並同步更新所有祖先。
"""

from __future__ import annotations

import dataclasses
from typing import Iterator, Optional

from .document import DocumentNode, NodeType


class DocumentIndex:
    """單一文件樹的 id → DocumentNode 查表."""

    def __init__(self, root: DocumentNode):
        self.root = root
        self._nodes: dict[str, DocumentNode] = {}
        self._parents: dict[str, Optional[str]] = {}

    @classmethod
    def build(cls, root: DocumentNode) -> "DocumentIndex":
        index = cls(root)
        index._populate()
        return index

    def _populate(self) -> None:
        self._nodes.clear()
        self._parents.clear()
        stack: list[tuple[DocumentNode, Optional[str]]] = [(self.root, None)]
        while stack:
            node, parent_id = stack.pop()
            # 重複 id：後寫入者覆蓋
            self._nodes[node.id] = node
            self._parents[node.id] = parent_id
            for child in reversed(node.children):
                stack.append((child, node.id))

    # ── Queries ─────────────────────────────────────────────

    def lookup(self, node_id: str) -> Optional[DocumentNode]:
        return self._nodes.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def ids(self) -> list[str]:
        return list(self._nodes)

    def parent_of(self, node_id: str) -> Optional[DocumentNode]:
        parent_id = self._parents.get(node_id)
        return self._nodes.get(parent_id) if parent_id is not None else None

    def walk(self, start: Optional[DocumentNode] = None) -> Iterator[tuple[DocumentNode, int]]:
        """前序走訪 (node, depth)，不使用遞迴."""
        stack = [(start or self.root, 0)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            for child in reversed(node.children):
                stack.append((child, depth + 1))

    def path_to(self, target: DocumentNode) -> list[str]:
        """回傳從根到 target 的名稱路徑（除錯用，非熱路徑）."""
        path: list[str] = []
        # (node, child cursor)；pop 時從路徑移除
        stack: list[list] = [[self.root, 0]]
        path.append(self.root.name)
        if self.root is target:
            return path
        while stack:
            frame = stack[-1]
            node, cursor = frame
            if cursor >= len(node.children):
                stack.pop()
                path.pop()
                continue
            frame[1] += 1
            child = node.children[cursor]
            path.append(child.name)
            if child is target:
                return path
            stack.append([child, 0])
        return []

    def full_path(self, node: DocumentNode) -> str:
        return "/".join(self.path_to(node))

    # ── Page / screen helpers ─────────────────────────────

    def page_nodes(self) -> list[DocumentNode]:
        return list(self.root.children)

    @staticmethod
    def is_screen_node(node: DocumentNode, parent: Optional[DocumentNode]) -> bool:
        if node.type != NodeType.FRAME or parent is None:
            return False
        return parent.type in (NodeType.CANVAS, NodeType.SECTION)

    def screen_nodes(self, pages: Optional[list] = None) -> list[DocumentNode]:
        screens = []
        for page in pages if pages is not None else self.page_nodes():
            for node, _ in self.walk(page):
                if self.is_screen_node(node, self.parent_of(node.id)):
                    screens.append(node)
        return screens

    def find_all_of_type(self, node_type: NodeType, start: Optional[DocumentNode] = None) -> list[DocumentNode]:
        return [n for n, _ in self.walk(start) if n.type == node_type]

    def find_component_instances(self, component_id: str, start: Optional[DocumentNode] = None) -> list[DocumentNode]:
        return [
            n for n, _ in self.walk(start)
            if n.type == NodeType.INSTANCE and n.component_id == component_id
        ]

    def flow_starting_points(self) -> list[str]:
        points = []
        for page in self.page_nodes():
            points.extend(page.flow_starting_points)
        return points

    def prototype_flow_start_screen_id(self, selected_page_ids: Optional[set] = None) -> str:
        """第一個有 flow starting point 的頁面（可限定已選頁面）."""
        for page in self.page_nodes():
            if selected_page_ids is not None and page.id not in selected_page_ids:
                continue
            if page.flow_starting_points:
                return page.flow_starting_points[0]
        return ""

    # ── Rewrite ──────────────────────────────────────────

    def replace(self, new_node: DocumentNode) -> None:
        """以新節點值取代同 id 的節點，並沿祖先鏈重建 children tuple."""
        old = self._nodes.get(new_node.id)
        if old is None:
            raise KeyError(new_node.id)
        self._nodes[new_node.id] = new_node
        current_old, current_new = old, new_node
        parent_id = self._parents.get(new_node.id)
        while parent_id is not None:
            parent = self._nodes[parent_id]
            children = tuple(current_new if c is current_old else c for c in parent.children)
            new_parent = dataclasses.replace(parent, children=children)
            self._nodes[parent_id] = new_parent
            current_old, current_new = parent, new_parent
            parent_id = self._parents.get(parent_id)
        if self.root is current_old:
            self.root = current_new
