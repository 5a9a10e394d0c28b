"""設定檔載入與基本驗證."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = "figma-scene.config.json"

# 已知有效的頂層欄位
_KNOWN_TOP_KEYS = {"figma", "import", "export"}

# 各區塊已知欄位（用於拼字提示）
_KNOWN_SECTION_KEYS = {
    "figma": {"personalAccessToken", "fileKey"},
    "import": {
        "selectedPages",
        "onlyImportSelectedPages",
        "renderOnlySelectedPages",
        "onlyImportImagesFromSelectedPages",
        "centerPivot",
        "serverRenderScale",
    },
    "export": {"snapshotDir", "assetRoot"},
}

_BOOL_KEYS = {
    "onlyImportSelectedPages",
    "renderOnlySelectedPages",
    "onlyImportImagesFromSelectedPages",
    "centerPivot",
}


def _warn(msg: str) -> None:
    print(f"   ⚠️  [config] {msg}")


def validate_config(cfg: dict) -> None:
    """對 config 做基本欄位驗證，印出警告但不拋例外。"""
    if not cfg:
        return

    # 頂層未知欄位
    for key in cfg:
        if key not in _KNOWN_TOP_KEYS:
            known = ", ".join(sorted(_KNOWN_TOP_KEYS))
            _warn(f"未知頂層欄位 '{key}'（已知欄位：{known}）")

    # 各區塊欄位
    for section, known_keys in _KNOWN_SECTION_KEYS.items():
        section_cfg = cfg.get(section, {})
        if not isinstance(section_cfg, dict):
            _warn(f"'{section}' 應為物件，目前是 {type(section_cfg).__name__}")
            continue
        for key in section_cfg:
            if key not in known_keys:
                known = ", ".join(sorted(known_keys))
                _warn(f"[{section}] 未知欄位 '{key}'（已知欄位：{known}）")

    import_cfg = cfg.get("import", {})
    if not isinstance(import_cfg, dict):
        return

    # 布林欄位
    for key in _BOOL_KEYS:
        val = import_cfg.get(key)
        if val is not None and not isinstance(val, bool):
            _warn(f"import.{key} 應為布林值，目前是 {type(val).__name__}")

    pages = import_cfg.get("selectedPages")
    if pages is not None and (
        not isinstance(pages, list) or not all(isinstance(p, str) for p in pages)
    ):
        _warn("import.selectedPages 應為 page id 字串陣列")

    scale = import_cfg.get("serverRenderScale")
    if scale is not None and (not isinstance(scale, (int, float)) or isinstance(scale, bool) or scale <= 0):
        _warn(f"import.serverRenderScale 應為正數，目前是 {scale!r}")


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """載入 JSON 設定檔，不存在則回傳空 dict；存在則做基本驗證。"""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg: Any = json.load(f)
    if not isinstance(cfg, dict):
        print(f"   ⚠️  [config] '{config_path}' 格式錯誤，應為 JSON 物件，回傳空設定。")
        return {}
    validate_config(cfg)
    return cfg


@dataclass
class ImportSettings:
    """單次匯入的選項（由 config 轉換）."""
    selected_page_ids: list = field(default_factory=list)
    only_import_selected_pages: bool = False
    render_only_selected_pages: bool = False
    only_import_images_from_selected_pages: bool = False
    center_pivot: bool = True
    server_render_scale: float = 2
    snapshot_dir: str = ".figma-scene"
    asset_root: str = "Figma"

    @classmethod
    def from_config(cls, cfg: dict) -> "ImportSettings":
        import_cfg = cfg.get("import", {}) if isinstance(cfg.get("import"), dict) else {}
        export_cfg = cfg.get("export", {}) if isinstance(cfg.get("export"), dict) else {}

        def flag(key: str, default: bool) -> bool:
            val = import_cfg.get(key, default)
            return val if isinstance(val, bool) else default

        scale = import_cfg.get("serverRenderScale", 2)
        if not isinstance(scale, (int, float)) or isinstance(scale, bool) or scale <= 0:
            scale = 2
        pages = import_cfg.get("selectedPages") or []
        return cls(
            selected_page_ids=[p for p in pages if isinstance(p, str)] if isinstance(pages, list) else [],
            only_import_selected_pages=flag("onlyImportSelectedPages", False),
            render_only_selected_pages=flag("renderOnlySelectedPages", False),
            only_import_images_from_selected_pages=flag("onlyImportImagesFromSelectedPages", False),
            center_pivot=flag("centerPivot", True),
            server_render_scale=scale,
            snapshot_dir=export_cfg.get("snapshotDir", ".figma-scene"),
            asset_root=export_cfg.get("assetRoot", "Figma"),
        )


def resolve_token(cfg: dict) -> str:
    """config 的 figma.personalAccessToken，否則讀 FIGMA_TOKEN 環境變數."""
    figma_cfg = cfg.get("figma", {}) if isinstance(cfg.get("figma"), dict) else {}
    return figma_cfg.get("personalAccessToken") or os.environ.get("FIGMA_TOKEN", "")
