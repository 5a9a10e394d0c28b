"""
DeltaMerger 單元測試
component 補值 / 新增、children 以名稱配對、遺失 child 重新掛回、重跑不變。
"""
import pytest

from airis_scene.backup import BackupStore
from airis_scene.components import ComponentLibrary
from airis_scene.generated import ComponentData, GeneratedNode, SceneRoot
from airis_scene.merge import DeltaMerger, PlanAction
from airis_scene.transform import Vector2


def tree(name, *children, **components):
    root = GeneratedNode(node_id=name.lower(), name=name, children=list(children))
    for kind, fields in components.items():
        root.components[kind] = ComponentData(kind, dict(fields))
    return root


def make_fresh():
    return tree(
        "Root",
        tree("Header", Text={"characters": ""}),
        tree("Footer"),
        ScreenController={"bindings": {}},
    )


def make_backup():
    return tree(
        "Root",
        tree("Header", Text={"characters": "Edited", "font_size": "huge"}, Button={"interactable": False}),
        tree("Banner", tree("Inner")),
        tree("Footer", Analytics={"event": "footer_view"}),
        ScreenController={"screen_name": "Old", "bindings": {"Header": "1:2"}},
    )


@pytest.fixture
def merger():
    return DeltaMerger()


# ─── 基本情況 ───────────────────────────────────────────────────────────────

def test_no_backup_leaves_tree_untouched(merger):
    fresh = make_fresh()
    report = merger.merge(fresh, None)
    assert not report.changed
    assert [c.name for c in fresh.children] == ["Header", "Footer"]


def test_empty_backup_tree_is_no_op(merger):
    fresh = make_fresh()
    report = merger.merge(fresh, tree("Root"))
    assert not report.changed
    assert fresh.to_dict() == make_fresh().to_dict()


# ─── component 欄位 ─────────────────────────────────────────────────────────

class TestComponents:
    def test_default_field_filled_from_backup(self, merger):
        fresh = make_fresh()
        merger.merge(fresh, make_backup())
        assert fresh.find_child("Header").component("Text").get("characters") == "Edited"

    def test_missing_component_added_with_all_fields(self, merger):
        fresh = make_fresh()
        report = merger.merge(fresh, make_backup())
        assert fresh.find_child("Header").component("Button").get("interactable") is False
        assert fresh.find_child("Footer").component("Analytics").get("event") == "footer_view"
        assert report.components_added == 2

    def test_non_default_fresh_value_wins(self, merger):
        fresh = make_fresh()
        fresh.find_child("Header").component("Text").set("characters", "From Figma")
        merger.merge(fresh, make_backup())
        assert fresh.find_child("Header").component("Text").get("characters") == "From Figma"

    def test_field_errors_are_counted_not_raised(self, merger):
        fresh = make_fresh()
        report = merger.merge(fresh, make_backup())
        # font_size 型別錯誤、screen_name 唯讀
        assert report.field_errors == 2
        assert fresh.component("ScreenController").get("screen_name") == ""
        assert fresh.component("ScreenController").get("bindings") == {"Header": "1:2"}

    def test_copied_values_are_independent(self, merger):
        fresh = make_fresh()
        backup = make_backup()
        merger.merge(fresh, backup)
        fresh.component("ScreenController").get("bindings")["New"] = "x"
        assert "New" not in backup.component("ScreenController").get("bindings")

    def test_added_component_keeps_read_only_fields(self, merger):
        """新樹沒有 ScreenController 時，備份的整個 component（含 screen_name）都要帶過來."""
        fresh = tree("Root", tree("Header"))
        backup = tree("Root", tree("Header"), ScreenController={"screen_name": "Login", "bindings": {"Header": "1:2"}})
        report = merger.merge(fresh, backup)
        assert report.field_errors == 0
        assert report.components_added == 1
        assert fresh.component("ScreenController").get("screen_name") == "Login"
        assert fresh.component("ScreenController").get("bindings") == {"Header": "1:2"}


# ─── children ───────────────────────────────────────────────────────────────

class TestChildren:
    def test_missing_child_reattached_at_backup_index(self, merger):
        fresh = make_fresh()
        report = merger.merge(fresh, make_backup())
        assert [c.name for c in fresh.children] == ["Header", "Banner", "Footer"]
        assert fresh.children[1].find_child("Inner") is not None
        assert report.children_reattached == 1
        assert report.preserved_paths == ["Root/Banner"]

    def test_reattached_child_is_a_copy(self, merger):
        fresh = make_fresh()
        backup = make_backup()
        merger.merge(fresh, backup)
        assert fresh.children[1] is not backup.children[1]

    def test_index_past_end_appends(self, merger):
        fresh = tree("Root")
        merger.merge(fresh, tree("Root", tree("A"), tree("B")))
        assert [c.name for c in fresh.children] == ["A", "B"]

    def test_nested_levels_merged(self, merger):
        fresh = tree("Root", tree("Panel", tree("Title")))
        backup = tree("Root", tree("Panel", tree("Title", Text={"characters": "Hi"}), tree("Extra")))
        merger.merge(fresh, backup)
        panel = fresh.find_child("Panel")
        assert [c.name for c in panel.children] == ["Title", "Extra"]
        assert panel.find_child("Title").component("Text").get("characters") == "Hi"

    def test_second_pass_is_no_op(self, merger):
        fresh = make_fresh()
        backup = make_backup()
        merger.merge(fresh, backup)
        snapshot = fresh.to_dict()
        report = merger.merge(fresh, backup)
        assert not report.changed
        assert fresh.to_dict() == snapshot

    def test_asset_instance_reinstantiated(self):
        library = ComponentLibrary()
        definition = tree("Card", tree("Title"), tree("Body"))
        library.register("5:1", SceneRoot("component", "Card", definition))
        merger = DeltaMerger(library)

        stale = tree("MyCard", tree("OldTitle"))
        stale.node_id = "9:9"
        stale.prefab_source = "Card"
        stale.transform.anchored_position = Vector2(5, 5)

        fresh = tree("Root")
        merger.merge(fresh, tree("Root", stale))
        restored = fresh.children[0]
        assert restored.prefab_source == "Card"
        assert restored.name == "MyCard"
        assert restored.node_id == "9:9"
        assert [c.name for c in restored.children] == ["Title", "Body"]
        assert restored.transform.anchored_position == Vector2(5, 5)

    def test_asset_gone_falls_back_to_copy(self):
        merger = DeltaMerger(ComponentLibrary())
        stale = tree("MyCard", tree("OldTitle"))
        stale.prefab_source = "Deleted"
        fresh = tree("Root")
        merger.merge(fresh, tree("Root", stale))
        assert [c.name for c in fresh.children[0].children] == ["OldTitle"]


# ─── reconcile ──────────────────────────────────────────────────────────────

class TestReconcile:
    def test_plan_actions(self, merger):
        store = BackupStore()
        store.put("screen", "Login", make_backup())
        store.put("screen", "Removed", tree("Removed"))

        roots = [
            SceneRoot("screen", "Login", make_fresh()),
            SceneRoot("page", "Home", tree("Home")),
        ]
        plan = merger.reconcile(roots, store)
        summary = plan.summary()
        assert summary == {"create": 1, "update": 1, "preserve": 1, "remove": 1}
        assert plan.actions(PlanAction.CREATE)[0].file_name == "Home"
        assert plan.actions(PlanAction.REMOVE)[0].file_name == "Removed"
        assert plan.actions(PlanAction.PRESERVE)[0].path == "Root/Banner"

    def test_backup_store_not_modified(self, merger):
        store = BackupStore()
        store.put("screen", "Login", make_backup())
        merger.reconcile([SceneRoot("screen", "Login", make_fresh())], store)
        assert store.get("screen", "Login").find_child("Header").component("Text").get("characters") == "Edited"

    def test_plan_serializes(self, merger):
        store = BackupStore()
        store.put("screen", "Login", make_backup())
        data = merger.reconcile([SceneRoot("screen", "Login", make_fresh())], store).to_dict()
        assert data["summary"]["update"] == 1
        assert data["entries"][0]["report"]["childrenReattached"] == 1
