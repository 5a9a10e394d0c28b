"""
Figma REST API 讀取

取得檔案 JSON 與伺服器算圖 / image fill 的圖片位元組。
核心流程只透過 ImageProvider.fetch(node_ids) 拉取圖片。
"""

import logging
from typing import Optional

import requests

from .document import FigmaDocument, SceneImportError, parse_document

logger = logging.getLogger(__name__)


class ImageFetchError(SceneImportError):
    """無法取得算圖結果時拋出."""


class FigmaAPIClient:
    """Figma REST API 唯讀封裝."""

    BASE_URL = "https://api.figma.com/v1"

    def __init__(self, token: str, timeout: float = 60.0):
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "X-Figma-Token": token,
            "Content-Type": "application/json",
        })

    def get_file(self, file_key: str, node_ids: Optional[list] = None) -> dict:
        url = f"{self.BASE_URL}/files/{file_key}"
        params = {}
        if node_ids:
            params["ids"] = ",".join(node_ids)
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_document(self, file_key: str) -> FigmaDocument:
        return parse_document(self.get_file(file_key))

    def get_images(self, file_key: str, node_ids: list, format: str = "png", scale: float = 2) -> dict:
        url = f"{self.BASE_URL}/images/{file_key}"
        params = {"ids": ",".join(node_ids), "format": format, "scale": scale}
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_image_fills(self, file_key: str) -> dict:
        """imageRef → 下載網址."""
        url = f"{self.BASE_URL}/files/{file_key}/images"
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json().get("meta", {}).get("images", {})

    def download(self, url: str) -> bytes:
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.content


class FigmaImageProvider:
    """以 node id 取回伺服器算圖的 PNG 位元組."""

    def __init__(self, client: FigmaAPIClient, file_key: str, scale: float = 2, batch_size: int = 50):
        self.client = client
        self.file_key = file_key
        self.scale = scale
        self.batch_size = batch_size

    def fetch(self, node_ids: list) -> dict:
        images: dict[str, bytes] = {}
        for start in range(0, len(node_ids), self.batch_size):
            batch = node_ids[start:start + self.batch_size]
            try:
                result = self.client.get_images(self.file_key, batch, scale=self.scale)
            except requests.RequestException as e:
                raise ImageFetchError(f"Render request failed for {len(batch)} node(s): {e}") from e
            if result.get("err"):
                raise ImageFetchError(f"Figma render error: {result['err']}")
            for node_id, url in (result.get("images") or {}).items():
                if not url:
                    # Figma 對無法算圖的節點回傳 null
                    logger.warning("No render available for node %s", node_id)
                    continue
                try:
                    images[node_id] = self.client.download(url)
                except requests.RequestException as e:
                    logger.warning("Download failed for node %s: %s", node_id, e)
        return images

    def fetch_fills(self, image_refs: list) -> dict:
        """imageRef → 位元組；只下載有被引用的 fill."""
        try:
            urls = self.client.get_image_fills(self.file_key)
        except requests.RequestException as e:
            raise ImageFetchError(f"Image fill request failed: {e}") from e
        images: dict[str, bytes] = {}
        for ref in image_refs:
            url = urls.get(ref)
            if not url:
                logger.warning("No download url for image fill %s", ref)
                continue
            try:
                images[ref] = self.client.download(url)
            except requests.RequestException as e:
                logger.warning("Download failed for image fill %s: %s", ref, e)
        return images
