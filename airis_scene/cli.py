#!/usr/bin/env python3
"""
figma-scene CLI — Figma 文件 → 原生 UI 場景樹

  python -m airis_scene.cli import --file-key KEY         # 從 Figma API 匯入
  python -m airis_scene.cli import --document file.json   # 從本地 JSON 匯入
  python -m airis_scene.cli classify --document file.json # 只看分類結果
  python -m airis_scene.cli preview --document file.json  # 預覽場景樹
  python -m airis_scene.cli watch --document file.json    # JSON 變更時自動重新匯入
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
import time
from pathlib import Path

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from airis_scene import __version__

from .backup import JsonBackupStore, snapshot_to_json
from .classifier import RenderTag
from .config import DEFAULT_CONFIG_PATH, ImportSettings, load_config, resolve_token
from .document import SceneImportError, load_document_file
from .figma_reader import FigmaAPIClient, FigmaImageProvider
from .generated import preview_scene_tree
from .importer import SceneImporter
from .paths import image_fill_path, server_rendered_image_path


def configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("   %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("airis_scene")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _settings_for(args, config: dict) -> ImportSettings:
    settings = ImportSettings.from_config(config)
    pages = getattr(args, "page", None)
    if pages:
        settings.selected_page_ids = list(pages)
        settings.only_import_selected_pages = True
    return settings


def _load_document(args, config: dict):
    """回傳 (FigmaDocument, image provider)；失敗時印出原因並回傳 (None, None)."""
    if getattr(args, "document", None):
        try:
            return load_document_file(args.document), None
        except (OSError, ValueError, SceneImportError) as e:
            print(f"❌ 無法讀取文件 '{args.document}'：{e}")
            return None, None

    token = resolve_token(config)
    figma_cfg = config.get("figma", {}) if isinstance(config.get("figma"), dict) else {}
    file_key = getattr(args, "file_key", None) or figma_cfg.get("fileKey")
    if not token:
        print(f"❌ 請設定 FIGMA_TOKEN 環境變數，或在 {DEFAULT_CONFIG_PATH} 的 figma.personalAccessToken 設定。")
        print("   取得方式：Figma → Settings → Personal access tokens → 新增")
        return None, None
    if not file_key:
        print("❌ 請使用 --file-key / --document，或在 config 的 figma.fileKey 設定 Figma 檔案 key。")
        return None, None

    # Figma API — 友善錯誤訊息
    client = FigmaAPIClient(token)
    try:
        document = client.get_document(file_key)
    except requests.RequestException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        if status == 403:
            print("❌ Figma API 403：Token 無效或已過期，請重新產生 FIGMA_TOKEN。")
        elif status == 404:
            print(f"❌ Figma API 404：找不到檔案 '{file_key}'，請確認 file key 是否正確。")
        else:
            print(f"❌ Figma API 錯誤：{e}")
        return None, None
    except SceneImportError as e:
        print(f"❌ Figma 回應格式錯誤：{e}")
        return None, None

    scale = ImportSettings.from_config(config).server_render_scale
    return document, FigmaImageProvider(client, file_key, scale=scale)


def _write_json(path: str, data) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _write_asset(output_dir: str, relative_path: str, data: bytes) -> None:
    path = Path(output_dir) / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def perform_import(args, config: dict):
    """匯入核心流程，import 與 watch 共用."""
    document, provider = _load_document(args, config)
    if document is None:
        return None

    settings = _settings_for(args, config)
    output_dir = settings.snapshot_dir
    os.makedirs(output_dir, exist_ok=True)
    print(f"📥 Importing '{document.name or 'document'}' → {output_dir}")

    backup_store = None if getattr(args, "no_backup", False) else JsonBackupStore(output_dir)
    importer = SceneImporter(settings, image_provider=provider, backup_store=backup_store)
    result = importer.run(document)

    print(f"   ✅ Built {result.node_count} nodes "
          f"({len(result.pages)} pages, {len(result.screens)} screens, {len(result.components)} components)")
    if result.promotions:
        print(f"   🧩 Promoted {len(result.promotions)} instance(s) for missing component definitions")

    for scene_root in result.roots:
        path = os.path.join(output_dir, f"scene-{scene_root.slot}-{scene_root.file_name}.json")
        _write_json(path, {"slot": scene_root.slot, "fileName": scene_root.file_name,
                           **snapshot_to_json(scene_root.root)})

    # 圖檔寫在 snapshot dir 下，與場景樹裡 Image.sprite 的相對路徑一致
    for node_id, data in result.images.items():
        node = result.index.lookup(node_id)
        if node is None:
            continue
        is_export = result.classification.tag_for(node_id) == RenderTag.SERVER_EXPORT
        sprite = server_rendered_image_path(node_id, node.name, is_export, root=settings.asset_root)
        _write_asset(output_dir, sprite, data)
    for image_ref, data in result.fill_images.items():
        _write_asset(output_dir, image_fill_path(image_ref, root=settings.asset_root), data)
    if result.images or result.fill_images:
        print(f"   🖼️  Saved {len(result.images)} server-rendered image(s), {len(result.fill_images)} image fill(s)")
    if result.flow_start_screen_id:
        print(f"   🚩 Flow starts at {result.flow_start_screen_id}")

    plan_path = os.path.join(output_dir, "last-plan.json")
    _write_json(plan_path, result.plan.to_dict())
    summary = ", ".join(f"{k}={v}" for k, v in result.plan.summary().items())
    print(f"   📄 Plan ({summary}) saved to {plan_path}")
    return result


def cmd_import(args, config: dict):
    """Import: 讀取 Figma 文件 → 產生場景樹 → 與上一輪合併."""
    perform_import(args, config)


def cmd_classify(args, config: dict):
    """只執行分類，列出需要伺服器算圖的節點."""
    document, _ = _load_document(args, config)
    if document is None:
        return
    result = SceneImporter(_settings_for(args, config)).run(document)
    exports = result.classification.ids_with(RenderTag.SERVER_EXPORT)
    substitutes = result.classification.ids_with(RenderTag.SERVER_SUBSTITUTE)
    print(f"🔎 {len(result.classification)} nodes classified")
    print(f"   export: {len(exports)}  substitute: {len(substitutes)}  image fills: {len(result.image_fill_ids)}")
    for server_node in result.server_render_nodes:
        print(f"   - [{server_node.render_type.value}] {result.index.full_path(server_node.node)}")
    if result.missing_component_ids:
        print(f"   ⚠️  Missing component definitions: {', '.join(result.missing_component_ids)}")
    if result.flow_start_screen_id:
        print(f"   🚩 Flow start screen: {result.flow_start_screen_id}")


def cmd_preview(args, config: dict):
    """預覽產生的場景樹."""
    document, _ = _load_document(args, config)
    if document is None:
        return
    result = SceneImporter(_settings_for(args, config)).run(document)
    for scene_root in result.roots:
        print(f"👁️  {scene_root.slot}: {scene_root.file_name}")
        print(preview_scene_tree(scene_root.root))
    print(f"\nTotal nodes: {sum(r.root.count() for r in result.roots)}")
    if result.flow_start_screen_id:
        print(f"Flow start screen: {result.flow_start_screen_id}")


class ChangeHandler(FileSystemEventHandler):
    """文件 JSON 變更事件處理器，帶 debounce 防抖。"""

    def __init__(self, callback, loop: asyncio.AbstractEventLoop, target: str, debounce: float = 1.0):
        self.callback = callback
        self.loop = loop
        self.target = Path(target).resolve()
        self.last_trigger = 0.0
        self.debounce_seconds = debounce

    def on_modified(self, event):
        if event.is_directory:
            return
        # 只看被監聽的文件，快照輸出不觸發
        if Path(event.src_path).resolve() != self.target:
            return
        current_time = time.time()
        if current_time - self.last_trigger < self.debounce_seconds:
            return
        self.last_trigger = current_time
        print(f"\n🔄 Document changed: {event.src_path}")
        asyncio.run_coroutine_threadsafe(self.callback(), self.loop)


def cmd_watch(args, config: dict):
    """Watch: 監聽文件 JSON 變更並自動重新匯入."""
    document_path = Path(args.document)
    watch_dir = str(document_path.resolve().parent)
    print(f"👀 Watching '{document_path}' for changes...")
    print("   Press Ctrl+C to stop.")

    # 匯入在同一個 loop 執行緒上依序執行，不會重疊
    loop = asyncio.new_event_loop()

    async def import_task():
        perform_import(args, config)

    def run_loop():
        asyncio.set_event_loop(loop)
        loop.run_forever()

    loop_thread = threading.Thread(target=run_loop, daemon=True)
    loop_thread.start()

    future = asyncio.run_coroutine_threadsafe(import_task(), loop)
    try:
        future.result(timeout=120)
    except Exception as e:  # 初次匯入失敗仍繼續監聽
        print(f"   ⚠️  Initial import failed: {e}")

    event_handler = ChangeHandler(import_task, loop, str(document_path), debounce=args.debounce)
    observer = Observer()
    observer.schedule(event_handler, path=watch_dir, recursive=False)
    observer.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping watch...")
        observer.stop()
    finally:
        observer.join()
        loop.call_soon_threadsafe(loop.stop)


def _add_source_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--file-key", help="Figma file key")
    p.add_argument("--document", help="Local Figma file JSON (GET /v1/files/:key response)")
    p.add_argument("--page", action="append", help="Page id to import (repeatable)")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="figma-scene: Figma document → native UI scene tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config path")
    parser.add_argument("--verbose", action="store_true", help="Show debug logs")
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    import_p = sub.add_parser("import", help="Figma → scene tree",
        epilog="Examples:\n  figma-scene import --file-key ABC123\n  figma-scene import --document design.json --page 0:1",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    _add_source_args(import_p)
    import_p.add_argument("--no-backup", action="store_true", help="Skip merging with / writing backups")

    classify_p = sub.add_parser("classify", help="Show server-render classification")
    _add_source_args(classify_p)

    preview_p = sub.add_parser("preview", help="Preview generated scene tree")
    _add_source_args(preview_p)

    watch_p = sub.add_parser("watch", help="Re-import when the document JSON changes",
        epilog="Examples:\n  figma-scene watch --document design.json",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    watch_p.add_argument("--document", required=True, help="Local Figma file JSON")
    watch_p.add_argument("--page", action="append", help="Page id to import (repeatable)")
    watch_p.add_argument("--no-backup", action="store_true", help="Skip merging with / writing backups")
    watch_p.add_argument("--debounce", type=float, default=1.0, help="Seconds between re-imports")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    config = load_config(args.config)

    if args.command == "import":
        cmd_import(args, config)
    elif args.command == "classify":
        cmd_classify(args, config)
    elif args.command == "preview":
        cmd_preview(args, config)
    elif args.command == "watch":
        cmd_watch(args, config)
    else:
        parser.print_help()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
