"""
檔名規則、備份快照與 GeneratedNode JSON 快照測試
"""
import json

import pytest

from airis_scene.backup import BackupStore, JsonBackupStore
from airis_scene.generated import ComponentData, GeneratedNode, preview_scene_tree
from airis_scene.paths import (
    NameCounter,
    file_name_for,
    image_fill_path,
    make_valid_file_name,
    safe_node_id,
    server_rendered_image_path,
    slot_folder,
)
from airis_scene.transform import Vector2


# ─── paths ─────────────────────────────────────────────────────────────────

def test_invalid_characters_replaced():
    assert make_valid_file_name("a/b:c.d") == "a_b_c_d"
    assert make_valid_file_name("Login") == "Login"


def test_file_name_for_trims_and_suffixes():
    assert file_name_for("  Home  ") == "Home"
    assert file_name_for("Home", 2) == "Home_2"


def test_name_counter_suffixes_per_slot():
    counter = NameCounter()
    assert counter.next_file_name("screen", "Login") == "Login"
    assert counter.next_file_name("screen", "Login") == "Login_1"
    assert counter.next_file_name("page", "Login") == "Login"
    assert counter.count("screen", "Login") == 2


def test_folders_and_image_paths():
    assert slot_folder("screen") == "Figma/Screens"
    assert slot_folder("component", backup=True) == "Figma/Backup/Components"
    assert safe_node_id("12:34") == "12_34"
    assert image_fill_path("abc") == "Figma/ImageFills/abc.png"
    assert server_rendered_image_path("1:2", "Logo", False) == "Figma/ServerRenderedImages/1_2.png"
    assert server_rendered_image_path("1:2", " Logo.v2 ", True) == "Figma/Logo_v2.png"


def test_unknown_slot_rejected():
    with pytest.raises(ValueError):
        slot_folder("widget")


# ─── ComponentData ─────────────────────────────────────────────────────────

class TestComponentData:
    def test_defaults(self):
        text = ComponentData("Text")
        assert text.get("font_size") == 14.0
        assert text.is_default("font_size")
        assert text.is_default("characters")

    def test_set_rejects_bad_writes(self):
        text = ComponentData("Text")
        with pytest.raises(TypeError):
            text.set("font_size", "big")
        with pytest.raises(AttributeError):
            text.set("no_such_field", 1)
        with pytest.raises(AttributeError):
            ComponentData("ScreenController").set("screen_name", "x")

    def test_int_accepted_for_float_field(self):
        text = ComponentData("Text")
        text.set("font_size", 16)
        assert not text.is_default("font_size")

    def test_custom_kind_accepts_any_field(self):
        custom = ComponentData("Analytics")
        custom.set("event", "tap")
        assert custom.field_names() == ["event"]
        assert custom.is_default("missing")


def test_generated_node_json_round_trip():
    node = GeneratedNode("1:1", "Login", component_ref="5:1", prefab_source="Card")
    node.transform.anchored_position = Vector2(10, -20)
    node.add_component("Text", characters="Hi")
    node.add_child(GeneratedNode("1:2", "Title"))
    node.add_child(GeneratedNode("1:0", "First"), 0)

    restored = GeneratedNode.from_dict(json.loads(json.dumps(node.to_dict())))
    assert restored.name == "Login"
    assert restored.node_id == "1:1"
    assert restored.prefab_source == "Card"
    assert restored.transform.anchored_position == Vector2(10, -20)
    assert restored.component("Text").get("characters") == "Hi"
    assert [c.name for c in restored.children] == ["First", "Title"]


# ─── 深層樹 ────────────────────────────────────────────────────────────────

DEPTH = 2500


def deep_tree(depth):
    root = GeneratedNode("0", "Level0")
    current = root
    for i in range(1, depth):
        child = GeneratedNode(str(i), f"Level{i}")
        current.add_child(child)
        current = child
    return root


def deepest(node):
    while node.children:
        node = node.children[0]
    return node


class TestDeepTrees:
    def test_dict_round_trip(self):
        restored = GeneratedNode.from_dict(deep_tree(DEPTH).to_dict())
        assert restored.count() == DEPTH
        assert deepest(restored).name == f"Level{DEPTH - 1}"

    def test_deep_copy_is_independent(self):
        original = deep_tree(DEPTH)
        copied = original.deep_copy()
        deepest(copied).name = "Changed"
        assert deepest(original).name == f"Level{DEPTH - 1}"
        assert copied.count() == DEPTH

    def test_preview(self):
        lines = preview_scene_tree(deep_tree(DEPTH)).splitlines()
        assert len(lines) == DEPTH
        assert lines[-1].strip().startswith(f"├─ Level{DEPTH - 1}")

    def test_json_backup_round_trip(self, tmp_path):
        store = JsonBackupStore(str(tmp_path))
        store.put("screen", "Deep", deep_tree(DEPTH))
        reloaded = JsonBackupStore(str(tmp_path)).get("screen", "Deep")
        assert reloaded.count() == DEPTH
        assert deepest(reloaded).node_id == str(DEPTH - 1)


def test_records_keep_structure():
    root = GeneratedNode("1", "Root")
    first = GeneratedNode("2", "First")
    first.add_child(GeneratedNode("3", "Inner"))
    root.add_child(first)
    root.add_child(GeneratedNode("4", "Second"))

    records = root.to_records()
    assert [(r["name"], r["parent"]) for r in records] == [
        ("Root", -1), ("First", 0), ("Inner", 1), ("Second", 0),
    ]
    restored = GeneratedNode.from_records(json.loads(json.dumps(records)))
    assert [c.name for c in restored.children] == ["First", "Second"]
    assert restored.children[0].children[0].name == "Inner"


def test_records_reject_bad_parent():
    with pytest.raises(ValueError):
        GeneratedNode.from_records([{"name": "Root", "parent": -1}, {"name": "Orphan", "parent": 7}])


# ─── BackupStore ───────────────────────────────────────────────────────────

def test_backup_store_copies_on_put():
    store = BackupStore()
    root = GeneratedNode("1:1", "Login")
    store.put("screen", "Login", root)
    root.name = "Changed"
    assert store.get("screen", "Login").name == "Login"


def test_supersede_replaces_everything():
    store = BackupStore()
    store.put("screen", "Old", GeneratedNode("1", "Old"))
    store.supersede([("page", "Home", GeneratedNode("2", "Home"))])
    assert store.keys() == [("page", "Home")]


class TestJsonBackupStore:
    def test_persist_and_reload(self, tmp_path):
        store = JsonBackupStore(str(tmp_path))
        root = GeneratedNode("1:1", "Login")
        root.add_component("Text", characters="Saved")
        store.put("screen", "Login", root)

        path = tmp_path / "Backup" / "Screens" / "Login.json"
        assert path.exists()
        reloaded = JsonBackupStore(str(tmp_path))
        assert reloaded.get("screen", "Login").component("Text").get("characters") == "Saved"

    def test_supersede_deletes_stale_files(self, tmp_path):
        store = JsonBackupStore(str(tmp_path))
        store.put("screen", "Old", GeneratedNode("1", "Old"))
        store.supersede([("screen", "New", GeneratedNode("2", "New"))])
        assert not (tmp_path / "Backup" / "Screens" / "Old.json").exists()
        assert JsonBackupStore(str(tmp_path)).keys() == [("screen", "New")]

    def test_unreadable_file_skipped(self, tmp_path):
        folder = tmp_path / "Backup" / "Pages"
        folder.mkdir(parents=True)
        (folder / "Broken.json").write_text("{oops", encoding="utf-8")
        assert JsonBackupStore(str(tmp_path)).keys() == []
