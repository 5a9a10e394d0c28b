"""
Import pipeline — 一次完整的匯入流程

  index → 缺漏元件修補 → 分類 → image fill 收集 → 產生場景 →
  元件展開 → 清除 placeholder → 與備份合併 → 覆寫備份

任何單一節點的問題都只記錄，不中斷整次匯入。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .backup import BackupStore
from .classifier import (
    ClassificationMap,
    RenderClassifier,
    RenderTag,
    ServerRenderNode,
    image_fill_ids,
)
from .components import (
    ComponentLibrary,
    ComponentResolver,
    Promotion,
    find_missing_component_definitions,
    replace_missing_components,
)
from .config import ImportSettings
from .document import FigmaDocument, SceneImportError
from .document_index import DocumentIndex
from .generated import SceneRoot
from .merge import DeltaMerger, PlanAction, PlanEntry, ReconciliationPlan
from .scene_builder import SceneBuilder

logger = logging.getLogger(__name__)


class ImageProvider(Protocol):
    def fetch(self, node_ids: list) -> dict: ...

    def fetch_fills(self, image_refs: list) -> dict: ...


@dataclass
class ImportResult:
    index: DocumentIndex
    classification: ClassificationMap
    server_render_nodes: list
    image_fill_ids: list
    missing_component_ids: list
    promotions: list
    pages: list = field(default_factory=list)
    screens: list = field(default_factory=list)
    components: list = field(default_factory=list)
    plan: ReconciliationPlan = field(default_factory=ReconciliationPlan)
    images: dict = field(default_factory=dict)
    fill_images: dict = field(default_factory=dict)
    flow_start_screen_id: str = ""
    node_count: int = 0

    @property
    def roots(self) -> list[SceneRoot]:
        return list(self.components) + list(self.screens) + list(self.pages)

    def root(self, slot: str, file_name: str) -> Optional[SceneRoot]:
        for scene_root in self.roots:
            if scene_root.key == (slot, file_name):
                return scene_root
        return None


class SceneImporter:

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        image_provider: Optional[ImageProvider] = None,
        backup_store: Optional[BackupStore] = None,
    ):
        self.settings = settings or ImportSettings()
        self.image_provider = image_provider
        self.backup_store = backup_store

    def _selected_page_ids(self, index: DocumentIndex) -> set:
        # 未指定時視為全部頁面都已選取
        if self.settings.selected_page_ids:
            return set(self.settings.selected_page_ids)
        return {page.id for page in index.page_nodes()}

    def run(self, figma_document: FigmaDocument) -> ImportResult:
        settings = self.settings
        index = DocumentIndex.build(figma_document.document)
        selected_ids = self._selected_page_ids(index)
        import_pages = [
            p for p in index.page_nodes()
            if not settings.only_import_selected_pages or p.id in selected_ids
        ]

        missing = find_missing_component_definitions(
            figma_document, index, import_pages if settings.only_import_selected_pages else None,
        )
        promotions: list[Promotion] = replace_missing_components(index, missing)
        # 升格後頁面節點已換成新值
        import_pages = [index.lookup(p.id) for p in import_pages]

        classifier = RenderClassifier(missing, selected_ids, settings.render_only_selected_pages)
        classification = classifier.classify(index.root)
        server_nodes: list[ServerRenderNode] = classifier.server_render_nodes(index.root)
        fill_ids = image_fill_ids(index.root, selected_ids, settings.only_import_images_from_selected_pages)
        logger.info(
            "Classified %d nodes (%d export, %d substitute), %d image fills",
            len(classification),
            len(classification.ids_with(RenderTag.SERVER_EXPORT)),
            len(classification.ids_with(RenderTag.SERVER_SUBSTITUTE)),
            len(fill_ids),
        )

        builder = SceneBuilder(index, classification, settings.center_pivot, settings.asset_root)
        library = ComponentLibrary()
        components = []
        for component_id, scene_root in builder.build_components():
            library.register(component_id, scene_root)
            components.append(scene_root)
        screens = builder.build_screens(import_pages)
        pages = builder.build_pages(import_pages)

        resolver = ComponentResolver(index, classification, library, settings.center_pivot)
        resolver.instantiate_all(screens, pages)
        resolver.remove_placeholder_markers(components + screens + pages)

        result = ImportResult(
            index=index,
            classification=classification,
            server_render_nodes=server_nodes,
            image_fill_ids=fill_ids,
            missing_component_ids=missing,
            promotions=promotions,
            pages=pages,
            screens=screens,
            components=components,
            node_count=builder.node_count,
            flow_start_screen_id=index.prototype_flow_start_screen_id(selected_ids),
        )
        result.images = self._fetch_images([s.node.id for s in server_nodes])
        result.fill_images = self._fetch_fill_images(fill_ids)

        merger = DeltaMerger(library)
        if self.backup_store is not None:
            result.plan = merger.reconcile(result.roots, self.backup_store)
            self.backup_store.supersede((r.slot, r.file_name, r.root) for r in result.roots)
        else:
            result.plan = ReconciliationPlan(
                [PlanEntry(PlanAction.CREATE, r.slot, r.file_name) for r in result.roots]
            )
        return result

    def _fetch_images(self, node_ids: list) -> dict:
        if self.image_provider is None or not node_ids:
            return {}
        try:
            return self.image_provider.fetch(node_ids)
        except SceneImportError as e:
            logger.warning("Server render fetch failed, continuing without images: %s", e)
            return {}

    def _fetch_fill_images(self, image_refs: list) -> dict:
        if self.image_provider is None or not image_refs:
            return {}
        try:
            return self.image_provider.fetch_fills(image_refs)
        except SceneImportError as e:
            logger.warning("Image fill fetch failed, continuing without fills: %s", e)
            return {}
