"""
Transform Resolver — Figma 幾何 → 錨點式 RectTransform

兩種模式：
  - relative：原生重建節點，使用 relativeTransform（位移 + 旋轉）與 size
  - absolute bounds：伺服器算圖節點（旋轉已烤進圖片），使用 absoluteBoundingBox

Figma 的 Y 軸向下，本地座標 Y 軸向上，因此 Y 一律取負。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .document import (
    BoundingBox,
    Constraints,
    DocumentNode,
    HorizontalConstraint,
    NodeType,
    VerticalConstraint,
)


@dataclass(frozen=True)
class Vector2:
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x - other.x, self.y - other.y)

    def scale(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x * other.x, self.y * other.y)

    def to_list(self) -> list:
        return [self.x, self.y]


TOP_LEFT = Vector2(0.0, 1.0)
CENTER = Vector2(0.5, 0.5)


@dataclass
class RectTransform:
    anchor_min: Vector2 = TOP_LEFT
    anchor_max: Vector2 = TOP_LEFT
    pivot: Vector2 = TOP_LEFT
    anchored_position: Vector2 = field(default_factory=Vector2)
    size_delta: Vector2 = field(default_factory=Vector2)
    rotation: float = 0.0  # degrees, counter-clockwise

    def transform_vector(self, v: Vector2) -> Vector2:
        """將本地座標向量旋轉到 parent 座標."""
        rad = math.radians(self.rotation)
        cos, sin = math.cos(rad), math.sin(rad)
        return Vector2(v.x * cos - v.y * sin, v.x * sin + v.y * cos)

    def copy_from(self, other: "RectTransform") -> None:
        self.anchor_min = other.anchor_min
        self.anchor_max = other.anchor_max
        self.pivot = other.pivot
        self.anchored_position = other.anchored_position
        self.size_delta = other.size_delta
        self.rotation = other.rotation

    def to_dict(self) -> dict:
        return {
            "anchorMin": self.anchor_min.to_list(),
            "anchorMax": self.anchor_max.to_list(),
            "pivot": self.pivot.to_list(),
            "anchoredPosition": self.anchored_position.to_list(),
            "sizeDelta": self.size_delta.to_list(),
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RectTransform":
        def vec(key, default):
            raw = data.get(key)
            return Vector2(*raw) if raw else default
        return cls(
            anchor_min=vec("anchorMin", TOP_LEFT),
            anchor_max=vec("anchorMax", TOP_LEFT),
            pivot=vec("pivot", TOP_LEFT),
            anchored_position=vec("anchoredPosition", Vector2()),
            size_delta=vec("sizeDelta", Vector2()),
            rotation=data.get("rotation", 0.0),
        )


# horizontal → (anchorMin.x, anchorMax.x)；vertical → (anchorMin.y, anchorMax.y)
# SCALE 與雙邊約束相同處理（尚未實作真正的等比縮放）
_HORIZONTAL_ANCHORS = {
    HorizontalConstraint.LEFT: (0.0, 0.0),
    HorizontalConstraint.RIGHT: (1.0, 1.0),
    HorizontalConstraint.CENTER: (0.5, 0.5),
    HorizontalConstraint.LEFT_RIGHT: (0.0, 1.0),
    HorizontalConstraint.SCALE: (0.0, 1.0),
}
_VERTICAL_ANCHORS = {
    VerticalConstraint.TOP: (1.0, 1.0),
    VerticalConstraint.BOTTOM: (0.0, 0.0),
    VerticalConstraint.CENTER: (0.5, 0.5),
    VerticalConstraint.TOP_BOTTOM: (0.0, 1.0),
    VerticalConstraint.SCALE: (0.0, 1.0),
}

_STRETCH_HORIZONTAL = (HorizontalConstraint.LEFT_RIGHT, HorizontalConstraint.SCALE)
_STRETCH_VERTICAL = (VerticalConstraint.TOP_BOTTOM, VerticalConstraint.SCALE)


def anchors_for_constraints(constraints: Constraints) -> tuple[Vector2, Vector2]:
    ax = _HORIZONTAL_ANCHORS.get(constraints.horizontal, (0.0, 1.0))
    ay = _VERTICAL_ANCHORS.get(constraints.vertical, (0.0, 1.0))
    return Vector2(ax[0], ay[0]), Vector2(ax[1], ay[1])


def _parent_size(parent: Optional[DocumentNode]) -> Vector2:
    if parent is None or parent.size is None:
        return Vector2()
    return Vector2(parent.size.x, parent.size.y)


def apply_constraints(rect: RectTransform, node: DocumentNode, parent: Optional[DocumentNode]) -> RectTransform:
    """依 constraints 設定錨點，並以父節點尺寸修正位置與 sizeDelta."""
    constraints = node.resolved_constraints
    rect.anchor_min, rect.anchor_max = anchors_for_constraints(constraints)
    parent_size = _parent_size(parent)

    dx = 0.0
    if constraints.horizontal == HorizontalConstraint.CENTER:
        dx = -parent_size.x * 0.5
    elif constraints.horizontal == HorizontalConstraint.RIGHT:
        dx = -parent_size.x
    dy = 0.0
    if constraints.vertical == VerticalConstraint.CENTER:
        dy = parent_size.y * 0.5
    elif constraints.vertical == VerticalConstraint.BOTTOM:
        dy = parent_size.y
    rect.anchored_position = rect.anchored_position + Vector2(dx, dy)

    if constraints.horizontal in _STRETCH_HORIZONTAL:
        rect.size_delta = Vector2(rect.size_delta.x - parent_size.x, rect.size_delta.y)
    if constraints.vertical in _STRETCH_VERTICAL:
        rect.size_delta = Vector2(rect.size_delta.x, rect.size_delta.y - parent_size.y)
    return rect


def rect_size(rect: RectTransform, parent_size: Vector2) -> Vector2:
    """實際尺寸：anchor 在 parent 上的跨距加上 sizeDelta."""
    return (rect.anchor_max - rect.anchor_min).scale(parent_size) + rect.size_delta


def set_pivot(rect: RectTransform, pivot: Vector2, parent_size: Vector2 = Vector2()) -> RectTransform:
    """更換 pivot 並補償位置，使節點在畫面上的位置不變."""
    offset = (pivot - rect.pivot).scale(rect_size(rect, parent_size))
    rect.anchored_position = rect.anchored_position + rect.transform_vector(offset)
    rect.pivot = pivot
    return rect


def _constraint_source(node: DocumentNode) -> DocumentNode:
    # Figma 的 GROUP 沒有自己的 constraints，改用第一個子節點
    if node.type == NodeType.GROUP and node.children:
        return node.children[0]
    return node


def apply_figma_transform(
    node: DocumentNode,
    parent: Optional[DocumentNode],
    center_pivot: bool = False,
    rect: Optional[RectTransform] = None,
) -> RectTransform:
    """相對模式：由 relativeTransform 與 size 重建."""
    rect = rect or RectTransform()
    rect.anchor_min = rect.anchor_max = TOP_LEFT
    rect.pivot = TOP_LEFT
    rect.anchored_position = Vector2()
    rect.rotation = 0.0

    m = node.relative_transform
    if m is not None:
        rect.anchored_position = Vector2(m[0][2], -m[1][2])
        rect.rotation = math.degrees(math.atan2(-m[1][0], m[0][0]))

    size = node.resolved_size
    rect.size_delta = Vector2(size.x, size.y)

    apply_constraints(rect, _constraint_source(node), parent)
    if center_pivot:
        set_pivot(rect, CENTER, _parent_size(parent))
    return rect


def apply_absolute_bounds_transform(
    node: DocumentNode,
    parent: Optional[DocumentNode],
    center_pivot: bool = False,
    rect: Optional[RectTransform] = None,
) -> RectTransform:
    """伺服器算圖節點的絕對邊界模式（旋轉已烘焙進圖）."""
    rect = rect or RectTransform()
    rect.anchor_min = rect.anchor_max = TOP_LEFT
    rect.pivot = TOP_LEFT
    rect.rotation = 0.0

    bounds = node.resolved_bounds
    parent_bounds = parent.resolved_bounds if parent is not None else BoundingBox()
    rect.size_delta = Vector2(bounds.width, bounds.height)
    rect.anchored_position = Vector2(bounds.x - parent_bounds.x, -(bounds.y - parent_bounds.y))

    apply_constraints(rect, node, parent)
    if center_pivot:
        set_pivot(rect, CENTER, _parent_size(parent))
    return rect
