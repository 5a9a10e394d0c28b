"""
airis-scene — Figma 文件 → 原生 UI 場景樹（Python 管線）

分類哪些節點交給伺服器算圖、其餘原生重建，展開元件實例，
並與上一輪產出合併以保留手動修改。
"""

__version__ = "0.1.0"

from .document import (
    DocumentFormatError,
    DocumentNode,
    FigmaDocument,
    NodeType,
    SceneImportError,
    load_document_file,
    parse_document,
    parse_node,
)
from .document_index import DocumentIndex
from .classifier import ClassificationMap, RenderClassifier, RenderTag, image_fill_ids
from .transform import RectTransform, Vector2, apply_absolute_bounds_transform, apply_figma_transform
from .generated import ComponentData, GeneratedNode, SceneRoot, preview_scene_tree
from .scene_builder import SceneBuilder
from .components import ComponentLibrary, ComponentResolver, find_missing_component_definitions, replace_missing_components
from .merge import DeltaMerger, PlanAction, ReconciliationPlan
from .backup import BackupStore, JsonBackupStore
from .config import ImportSettings, load_config, validate_config
from .figma_reader import FigmaAPIClient, FigmaImageProvider, ImageFetchError
from .importer import ImportResult, SceneImporter

__all__ = [
    "__version__",
    "DocumentFormatError",
    "DocumentNode",
    "FigmaDocument",
    "NodeType",
    "SceneImportError",
    "load_document_file",
    "parse_document",
    "parse_node",
    "DocumentIndex",
    "ClassificationMap",
    "RenderClassifier",
    "RenderTag",
    "image_fill_ids",
    "RectTransform",
    "Vector2",
    "apply_absolute_bounds_transform",
    "apply_figma_transform",
    "ComponentData",
    "GeneratedNode",
    "SceneRoot",
    "preview_scene_tree",
    "SceneBuilder",
    "ComponentLibrary",
    "ComponentResolver",
    "find_missing_component_definitions",
    "replace_missing_components",
    "DeltaMerger",
    "PlanAction",
    "ReconciliationPlan",
    "BackupStore",
    "JsonBackupStore",
    "ImportSettings",
    "load_config",
    "validate_config",
    "FigmaAPIClient",
    "FigmaImageProvider",
    "ImageFetchError",
    "ImportResult",
    "SceneImporter",
]
