"""產出檔名與資料夾規則（pages / screens / components 及其備份）."""

import re
from enum import Enum

SLOT_FOLDERS = {
    "page": "Pages",
    "screen": "Screens",
    "component": "Components",
}

IMAGE_FILL_FOLDER = "ImageFills"
SERVER_RENDERED_IMAGES_FOLDER = "ServerRenderedImages"
BACKUP_FOLDER = "Backup"

_INVALID_FILE_CHARS = '<>:"/\\|?*' + "".join(chr(i) for i in range(32))
_INVALID_RE = re.compile(
    r"([{0}]*\.+$)|([{0}]+)".format(re.escape(_INVALID_FILE_CHARS + "."))
)


class Slot(str, Enum):
    PAGE = "page"
    SCREEN = "screen"
    COMPONENT = "component"


def make_valid_file_name(name: str) -> str:
    """非法字元（含 '.'）換成 '_'."""
    return _INVALID_RE.sub("_", name)


def safe_node_id(node_id: str) -> str:
    return node_id.replace(":", "_")


def file_name_for(name: str, duplicate_count: int = 0) -> str:
    """前後空白去除、非法字元替換；重名時加 _<n>."""
    if duplicate_count > 0:
        name = f"{name}_{duplicate_count}"
    return make_valid_file_name(name.strip())


def slot_folder(slot: str, root: str = "Figma", backup: bool = False) -> str:
    folder = SLOT_FOLDERS[Slot(slot).value]
    if backup:
        return f"{root}/{BACKUP_FOLDER}/{folder}"
    return f"{root}/{folder}"


def image_fill_path(image_id: str, root: str = "Figma") -> str:
    return f"{root}/{IMAGE_FILL_FOLDER}/{image_id}.png"


def server_rendered_image_path(node_id: str, node_name: str, is_export: bool, root: str = "Figma") -> str:
    # export 節點沿用設計師命名，其餘以 node id 命名
    if is_export:
        return f"{root}/{make_valid_file_name(node_name.strip())}.png"
    return f"{root}/{SERVER_RENDERED_IMAGES_FOLDER}/{safe_node_id(node_id)}.png"


class NameCounter:
    """記錄同名出現次數，用來產生 `_<n>` 後綴."""

    def __init__(self):
        self._counts: dict = {}

    def next_file_name(self, slot: str, name: str) -> str:
        key = (slot, name)
        count = self._counts.get(key, 0)
        self._counts[key] = count + 1
        return file_name_for(name, count)

    def count(self, slot: str, name: str) -> int:
        return self._counts.get((slot, name), 0)
