"""
Figma 文件模型

將 Figma REST API (GET /files/:key) 回傳的 JSON 轉成唯讀的 DocumentNode 樹。
幾何欄位缺漏時一律給預設值（零向量 / 單位矩陣），不拋例外。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SceneImportError(Exception):
    """匯入流程的基礎例外."""


class DocumentFormatError(SceneImportError):
    """提供的內容不是 Figma 檔案回應."""


class NodeType(str, Enum):
    DOCUMENT = "DOCUMENT"
    CANVAS = "CANVAS"
    SECTION = "SECTION"
    FRAME = "FRAME"
    GROUP = "GROUP"
    COMPONENT = "COMPONENT"
    COMPONENT_SET = "COMPONENT_SET"
    INSTANCE = "INSTANCE"
    VECTOR = "VECTOR"
    BOOLEAN_OPERATION = "BOOLEAN_OPERATION"
    TEXT = "TEXT"
    RECTANGLE = "RECTANGLE"
    ELLIPSE = "ELLIPSE"
    LINE = "LINE"
    STAR = "STAR"
    REGULAR_POLYGON = "REGULAR_POLYGON"
    SLICE = "SLICE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "NodeType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class HorizontalConstraint(str, Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    CENTER = "CENTER"
    LEFT_RIGHT = "LEFT_RIGHT"
    SCALE = "SCALE"


class VerticalConstraint(str, Enum):
    TOP = "TOP"
    BOTTOM = "BOTTOM"
    CENTER = "CENTER"
    TOP_BOTTOM = "TOP_BOTTOM"
    SCALE = "SCALE"


@dataclass(frozen=True)
class Vector:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Constraints:
    horizontal: HorizontalConstraint = HorizontalConstraint.LEFT
    vertical: VerticalConstraint = VerticalConstraint.TOP


@dataclass(frozen=True)
class Paint:
    type: str
    visible: bool = True
    opacity: float = 1.0
    image_ref: Optional[str] = None


@dataclass(frozen=True, eq=False)
class DocumentNode:
    """單一 Figma 節點（唯讀）."""
    id: str
    name: str
    type: NodeType
    children: tuple = ()
    visible: bool = True
    component_id: Optional[str] = None
    relative_transform: Optional[tuple] = None  # ((a, b, tx), (c, d, ty))
    size: Optional[Vector] = None
    absolute_bounding_box: Optional[BoundingBox] = None
    constraints: Optional[Constraints] = None
    fills: tuple = ()
    export_settings: tuple = ()
    flow_starting_points: tuple = ()
    characters: Optional[str] = None

    @property
    def has_children(self) -> bool:
        return len(self.children) > 0

    @property
    def resolved_size(self) -> Vector:
        return self.size if self.size is not None else Vector()

    @property
    def resolved_bounds(self) -> BoundingBox:
        return self.absolute_bounding_box if self.absolute_bounding_box is not None else BoundingBox()

    @property
    def resolved_constraints(self) -> Constraints:
        return self.constraints if self.constraints is not None else Constraints()


@dataclass
class FigmaDocument:
    """整份 Figma 檔案：根節點 + components 表."""
    document: DocumentNode
    name: str = ""
    components: dict = field(default_factory=dict)

    @property
    def pages(self) -> tuple:
        return self.document.children


def _parse_vector(raw: Optional[dict]) -> Optional[Vector]:
    if not isinstance(raw, dict):
        return None
    return Vector(float(raw.get("x", 0) or 0), float(raw.get("y", 0) or 0))


def _parse_bounds(raw: Optional[dict]) -> Optional[BoundingBox]:
    if not isinstance(raw, dict):
        return None
    return BoundingBox(
        x=float(raw.get("x", 0) or 0),
        y=float(raw.get("y", 0) or 0),
        width=float(raw.get("width", 0) or 0),
        height=float(raw.get("height", 0) or 0),
    )


def _parse_transform(raw: Any) -> Optional[tuple]:
    if not isinstance(raw, list) or len(raw) < 2:
        return None
    try:
        rows = tuple(tuple(float(v) for v in row[:3]) for row in raw[:2])
    except (TypeError, ValueError):
        return None
    if any(len(row) < 3 for row in rows):
        return None
    return rows


def _parse_constraints(raw: Optional[dict]) -> Optional[Constraints]:
    if not isinstance(raw, dict):
        return None
    try:
        horizontal = HorizontalConstraint(raw.get("horizontal", "LEFT"))
    except ValueError:
        horizontal = HorizontalConstraint.LEFT
    try:
        vertical = VerticalConstraint(raw.get("vertical", "TOP"))
    except ValueError:
        vertical = VerticalConstraint.TOP
    return Constraints(horizontal, vertical)


def _parse_fills(raw: Any) -> tuple:
    if not isinstance(raw, list):
        return ()
    fills = []
    for paint in raw:
        if not isinstance(paint, dict):
            continue
        fills.append(Paint(
            type=paint.get("type", "SOLID"),
            visible=paint.get("visible", True),
            opacity=paint.get("opacity", 1.0),
            image_ref=paint.get("imageRef"),
        ))
    return tuple(fills)


def _build_node(raw: dict, children: tuple) -> DocumentNode:
    flow_points = tuple(
        p.get("nodeId") for p in raw.get("flowStartingPoints") or []
        if isinstance(p, dict) and p.get("nodeId")
    )
    return DocumentNode(
        id=str(raw.get("id", "")),
        name=raw.get("name", ""),
        type=NodeType.parse(raw.get("type")),
        children=children,
        visible=raw.get("visible", True),
        component_id=raw.get("componentId"),
        relative_transform=_parse_transform(raw.get("relativeTransform")),
        size=_parse_vector(raw.get("size")),
        absolute_bounding_box=_parse_bounds(raw.get("absoluteBoundingBox")),
        constraints=_parse_constraints(raw.get("constraints")),
        fills=_parse_fills(raw.get("fills")),
        export_settings=tuple(raw.get("exportSettings") or ()),
        flow_starting_points=flow_points,
        characters=raw.get("characters"),
    )


def _raw_children(raw: dict) -> list:
    return [c for c in raw.get("children") or [] if isinstance(c, dict)]


def parse_node(raw: dict) -> DocumentNode:
    """將 Figma API 節點 dict 轉成 DocumentNode.

    以明確堆疊後序建構（子節點先完成），深層巢狀不受遞迴上限影響。
    """
    if not isinstance(raw, dict):
        raise DocumentFormatError(f"Expected a node object, got {type(raw).__name__}")
    # (raw, raw children, 已建好的 children)
    stack = [(raw, _raw_children(raw), [])]
    built = None
    while stack:
        current, pending, done = stack[-1]
        if len(done) < len(pending):
            child = pending[len(done)]
            stack.append((child, _raw_children(child), []))
            continue
        stack.pop()
        built = _build_node(current, tuple(done))
        if stack:
            stack[-1][2].append(built)
    return built


def parse_document(file_json: dict) -> FigmaDocument:
    """解析完整的 ``GET /files/:key`` 回應."""
    if not isinstance(file_json, dict) or "document" not in file_json:
        raise DocumentFormatError("Figma file response has no 'document' root")
    return FigmaDocument(
        document=parse_node(file_json["document"]),
        name=file_json.get("name", ""),
        components=dict(file_json.get("components") or {}),
    )


def load_document_file(path: str) -> FigmaDocument:
    """讀取先前存下的 Figma 檔案 JSON."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise DocumentFormatError(f"'{path}' is not valid JSON: {e}") from e
    return parse_document(data)
