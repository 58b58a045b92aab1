"""Tests for familytree/plotting.py — layered layout and figure output."""
from familytree import plotting
from familytree.tree_builder import TreeView


def person(pid, alive=True, **extra):
    return {"id": pid, "first_name": f"P{pid}", "last_name": "Test", "is_alive": alive, **extra}


def edge(source, target):
    return {"source": source, "target": target, "type": "child"}


def _view(people, edges):
    view = TreeView()
    view.refresh(people, edges)
    return view


class TestLayout:
    def test_empty(self):
        assert plotting.layered_tree_layout(TreeView()) == {}

    def test_parent_centred_over_children(self):
        view = _view([person(1), person(2), person(3)], [edge(1, 2), edge(1, 3)])
        pos = plotting.layered_tree_layout(view, layer_gap=100, sibling_gap=50)
        root = view.tree
        a, b = root.children
        assert pos[a] == (0, -100)
        assert pos[b] == (50, -100)
        assert pos[root] == (25, 0)

    def test_collapsed_subtree_not_placed(self):
        view = _view([person(1), person(2), person(3)], [edge(1, 2), edge(2, 3)])
        view.toggle(2)
        pos = plotting.layered_tree_layout(view)
        assert sorted(n.id for n in pos) == [1, 2]


class TestFigure:
    def test_empty_title(self):
        fig = plotting.build_tree_figure(TreeView())
        assert fig.layout.title.text == "No family data found"

    def test_nodes_and_edges(self):
        view = _view([person(1), person(2, alive=False, birth_date="1900-01-01",
                                         death_date="1950-05-05")],
                     [edge(1, 2)])
        fig = plotting.build_tree_figure(view)
        edge_trace, node_trace = fig.data
        assert list(node_trace.customdata) == [2, 1]
        assert node_trace.marker.color[0] == plotting.DECEASED_COLOR
        assert node_trace.marker.color[1] == plotting.LIVING_COLOR
        assert "1900–1950" in node_trace.hovertext[0]
        assert len(edge_trace.x) == 3

    def test_hidden_children_in_hover(self):
        view = _view([person(1), person(2), person(3)], [edge(1, 2), edge(1, 3)])
        view.toggle(1)
        fig = plotting.build_tree_figure(view)
        node_trace = fig.data[1]
        assert "2 hidden" in node_trace.hovertext[0]

    def test_death_year_without_birth_date(self):
        view = _view([person(1, alive=False, death_date="1944-06-06")], [])
        fig = plotting.build_tree_figure(view)
        assert "–1944" in fig.data[1].hovertext[0]
