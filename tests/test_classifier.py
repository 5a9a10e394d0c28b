"""
RenderClassifier 單元測試
export / substitute / native 判定規則與 image fill 收集。
"""
import pytest

from airis_scene.classifier import (
    ClassificationMap,
    RenderClassifier,
    RenderTag,
    TraversalContext,
    image_fill_ids,
    is_substitution_candidate,
    subtree_exclusively_of_types,
)
from airis_scene.document import NodeType, parse_node

EXPORT = [{"format": "PNG", "suffix": "", "constraint": {"type": "SCALE", "value": 1}}]


def node(node_id, node_type="FRAME", name=None, children=(), **extra):
    raw = {"id": node_id, "type": node_type, "name": name or node_id, "children": list(children)}
    raw.update(extra)
    return raw


def make_root():
    return parse_node(node("0:0", "DOCUMENT", children=[
        node("0:1", "CANVAS", "Home", [
            node("1:1", "FRAME", "Logo", exportSettings=EXPORT),
            node("1:2", "FRAME", "Login", [
                node("1:3", "FRAME", "Badge", exportSettings=EXPORT),
                node("1:4", "INSTANCE", "Button", componentId="5:1", children=[
                    node("I1:4;5:2", "TEXT", "Label"),
                ]),
                node("1:5", "INSTANCE", "Ghost", componentId="9:9", children=[
                    node("I1:5;9:10", "TEXT", "Inner"),
                ]),
                node("1:6", "FRAME", "Hidden", visible=False, children=[node("1:7", "TEXT")]),
            ]),
        ]),
        node("0:2", "CANVAS", "Components", [
            node("5:1", "COMPONENT", "Button", [
                node("5:2", "TEXT", "Label"),
                node("5:3", "VECTOR", "Arrow"),
                node("5:4", "GROUP", "Icon", [node("5:5", "VECTOR"), node("5:6", "VECTOR")]),
                node("5:7", "GROUP", "Mixed", [node("5:8", "VECTOR"), node("5:9", "TEXT")]),
                node("5:10", "FRAME", "Shadow render"),
            ]),
            node("6:1", "COMPONENT", "Exported", exportSettings=EXPORT),
        ]),
    ]))


@pytest.fixture
def root():
    return make_root()


# ─── 子樹類型檢查 ───────────────────────────────────────────────────────────

def test_subtree_exclusively_of_types_counts_vectors():
    group = parse_node(node("1", "GROUP", children=[node("2", "VECTOR"), node("3", "VECTOR")]))
    ok, counts = subtree_exclusively_of_types(group, (NodeType.GROUP, NodeType.VECTOR))
    assert ok
    assert counts[NodeType.VECTOR] == 2


def test_subtree_with_disallowed_type_fails():
    group = parse_node(node("1", "GROUP", children=[node("2", "VECTOR"), node("3", "TEXT")]))
    ok, _ = subtree_exclusively_of_types(group, (NodeType.GROUP, NodeType.VECTOR))
    assert not ok


def test_substitution_candidate_rules():
    assert is_substitution_candidate(parse_node(node("1", "VECTOR")), 2)
    assert is_substitution_candidate(parse_node(node("1", "BOOLEAN_OPERATION")), 2)
    assert is_substitution_candidate(parse_node(node("1", "RECTANGLE", "bg Render")), 3)
    # 第一層 FRAME 不替代
    assert not is_substitution_candidate(parse_node(node("1", "FRAME", "render me")), 1)
    assert not is_substitution_candidate(parse_node(node("1", "CANVAS", "render")), 0)
    # 沒有 VECTOR 的 group
    assert not is_substitution_candidate(parse_node(node("1", "GROUP", children=[node("2", "FRAME")])), 2)


def test_traversal_context_descend():
    component = parse_node(node("5:1", "COMPONENT"))
    ctx = TraversalContext(1, False, True).descend(component)
    assert ctx.depth == 2
    assert ctx.within_component_definition
    assert ctx.is_selected_page


# ─── 分類規則 ───────────────────────────────────────────────────────────────

class TestClassify:
    def test_export_at_depth_one_on_selected_page(self, root):
        result = RenderClassifier(selected_page_ids={"0:1"}).classify(root)
        assert result["1:1"] == RenderTag.SERVER_EXPORT

    def test_export_ignored_below_depth_one(self, root):
        result = RenderClassifier(selected_page_ids={"0:1"}).classify(root)
        assert result["1:3"] == RenderTag.NATIVE_RECONSTRUCT

    def test_export_ignored_on_unselected_page(self, root):
        result = RenderClassifier(selected_page_ids=set()).classify(root)
        assert result["1:1"] == RenderTag.NATIVE_RECONSTRUCT

    def test_component_export_on_unselected_page(self, root):
        # 元件本身在 depth 1，不在定義內；未選頁面不輸出
        result = RenderClassifier(selected_page_ids={"0:1"}).classify(root)
        assert result["6:1"] == RenderTag.NATIVE_RECONSTRUCT
        result = RenderClassifier(selected_page_ids={"0:2"}).classify(root)
        assert result["6:1"] == RenderTag.SERVER_EXPORT

    def test_substitutions_inside_component(self, root):
        result = RenderClassifier(selected_page_ids={"0:1", "0:2"}).classify(root)
        assert result["5:3"] == RenderTag.SERVER_SUBSTITUTE
        assert result["5:4"] == RenderTag.SERVER_SUBSTITUTE
        assert result["5:10"] == RenderTag.SERVER_SUBSTITUTE
        assert result["5:2"] == RenderTag.NATIVE_RECONSTRUCT
        assert result["5:7"] == RenderTag.NATIVE_RECONSTRUCT
        # 替代節點不往下走
        assert "5:5" not in result
        # Mixed 不替代，children 各自判斷
        assert result["5:8"] == RenderTag.SERVER_SUBSTITUTE
        assert result["5:9"] == RenderTag.NATIVE_RECONSTRUCT

    def test_resolved_instances_and_hidden_nodes_skipped(self, root):
        result = RenderClassifier(selected_page_ids={"0:1"}).classify(root)
        assert "1:4" not in result
        assert "I1:4;5:2" not in result
        assert "1:6" not in result
        assert "1:7" not in result
        assert result.tag_for("1:4") == RenderTag.NATIVE_RECONSTRUCT

    def test_missing_component_instance_is_walked(self, root):
        result = RenderClassifier(missing_component_ids={"9:9"}, selected_page_ids={"0:1"}).classify(root)
        assert result["1:5"] == RenderTag.NATIVE_RECONSTRUCT
        assert result["I1:5;9:10"] == RenderTag.NATIVE_RECONSTRUCT

    def test_render_only_selected_pages(self, root):
        result = RenderClassifier(selected_page_ids={"0:1"}, render_only_selected_pages=True).classify(root)
        assert "5:3" not in result
        assert "1:1" in result

    def test_server_render_nodes_match_classification(self, root):
        classifier = RenderClassifier(selected_page_ids={"0:1", "0:2"})
        result = classifier.classify(root)
        nodes = classifier.server_render_nodes(root)
        assert {n.node.id for n in nodes} == {
            i for i in result.ids_with(RenderTag.SERVER_EXPORT) + result.ids_with(RenderTag.SERVER_SUBSTITUTE)
        }
        assert {n.render_type for n in nodes if n.node.id == "1:1"} == {RenderTag.SERVER_EXPORT}

    def test_classification_is_deterministic(self, root):
        classifier = RenderClassifier(selected_page_ids={"0:1", "0:2"})
        assert classifier.classify(root) == classifier.classify(make_root())


def test_classification_map_helpers():
    tags = ClassificationMap({"a": RenderTag.SERVER_SUBSTITUTE, "b": RenderTag.NATIVE_RECONSTRUCT})
    assert tags.is_substitution("a")
    assert tags.is_server_rendered("a")
    assert not tags.is_server_rendered("b")
    assert not tags.is_server_rendered("unseen")
    assert tags.as_dict() == {"a": "substitute", "b": "native"}


# ─── image fill 收集 ────────────────────────────────────────────────────────

def _fill(ref):
    return [{"type": "IMAGE", "imageRef": ref}]


def make_fill_root():
    return parse_node(node("0:0", "DOCUMENT", children=[
        node("0:1", "CANVAS", "Home", [
            node("1:1", "FRAME", "Hero", fills=_fill("hero"), children=[
                node("1:2", "RECTANGLE", "Photo", fills=_fill("photo")),
                node("1:3", "RECTANGLE", "Again", fills=_fill("hero")),
            ]),
            node("1:4", "RECTANGLE", "Reference", fills=_fill("reference")),
        ]),
        node("0:2", "CANVAS", "Other", [
            node("2:1", "FRAME", "Unused", fills=_fill("unused")),
            node("3:1", "COMPONENT", "Avatar", fills=_fill("avatar-self"), children=[
                node("3:2", "RECTANGLE", "Pic", fills=_fill("avatar")),
            ]),
        ]),
    ]))


def test_image_fill_ids_dedup_and_skip_loose_references():
    ids = image_fill_ids(make_fill_root(), {"0:1"})
    assert ids == ["hero", "photo", "avatar"]


def test_image_fill_ids_only_selected_pages():
    assert image_fill_ids(make_fill_root(), {"0:1"}, only_selected_pages=True) == ["hero", "photo"]


def test_image_fill_ids_all_pages_selected():
    ids = image_fill_ids(make_fill_root(), {"0:1", "0:2"})
    assert "unused" in ids
    assert "avatar-self" in ids
    assert "reference" not in ids
