"""Build a rooted, collapsible family tree from individuals and typed edges.

Individuals are plain dicts with at least an ``id``; edges are dicts shaped
``{"source": id, "target": id, "type": str}`` as returned by
``relationships.list_edges``. Only ``child`` edges shape the tree: an edge
``source -[child]-> target`` makes *target* a child of *source*.

Construction is pure and synchronous. Callers fetch a snapshot of both lists
first and hand it over; nothing here touches the database.
"""
from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

CHILD = "child"

_default_logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TreeNode:
    individual: dict
    depth: int = 0
    children: List["TreeNode"] = field(default_factory=list)
    is_expanded: bool = True
    _parent_ref: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    @property
    def id(self):
        return self.individual["id"]

    @property
    def parent(self) -> Optional["TreeNode"]:
        return self._parent_ref() if self._parent_ref is not None else None

    def shape(self) -> dict:
        """Ids, depths and child order only; handy for comparing two builds."""
        return {"id": self.id, "depth": self.depth,
                "children": [c.shape() for c in self.children]}

    def walk(self) -> Iterator["TreeNode"]:
        """Pre-order walk over this node and all descendants."""
        yield self
        for child in self.children:
            yield from child.walk()


def child_ids(edges: Iterable[dict]) -> set:
    """Ids that appear as the target of some child edge, i.e. have a recorded parent."""
    return {e["target"] for e in edges if e["type"] == CHILD}


def find_root(individuals: List[dict], edges: Iterable[dict]) -> Optional[dict]:
    """First individual (in the given order) with no recorded parent.

    Falls back to the first individual when everyone has a parent, and returns
    None for an empty list.
    """
    if not individuals:
        return None
    has_parent = child_ids(edges)
    for ind in individuals:
        if ind["id"] not in has_parent:
            return ind
    return individuals[0]


class TreeBuilder:
    """Depth-first construction over outgoing child edges.

    Children keep edge order. Edges pointing at unknown individuals are
    skipped. An edge that would revisit an individual already on the current
    path is a cycle: it is dropped, logged, and recorded in ``cycles``.
    """

    def __init__(self, individuals: Iterable[dict], edges: Iterable[dict],
                 logger: Optional[logging.Logger] = None):
        self.individuals = list(individuals)
        self.edges = list(edges)
        self.log = logger or _default_logger
        self.cycles: List[Tuple] = []

        self._by_id: Dict = {}
        for ind in self.individuals:
            self._by_id.setdefault(ind["id"], ind)

        self._children_of: Dict = {}
        for e in self.edges:
            if e["type"] == CHILD:
                self._children_of.setdefault(e["source"], []).append(e["target"])

    def find_root(self) -> Optional[dict]:
        return find_root(self.individuals, self.edges)

    def build(self, root: Optional[dict] = None) -> Optional[TreeNode]:
        """Build the tree under root (inferred when omitted). None for an empty dataset."""
        self.cycles = []
        if root is None:
            root = self.find_root()
        if root is None:
            self.log.debug("No individuals; skipping tree construction")
            return None
        return self._build_node(root, 0, None, frozenset())

    def _build_node(self, individual: dict, depth: int,
                    parent: Optional[TreeNode], path: frozenset) -> TreeNode:
        node = TreeNode(
            individual=individual,
            depth=depth,
            _parent_ref=weakref.ref(parent) if parent is not None else None,
        )
        path = path | {individual["id"]}
        for target_id in self._children_of.get(individual["id"], []):
            child = self._by_id.get(target_id)
            if child is None:
                self.log.debug("Skipping child edge %s -> %s: no such individual",
                               individual["id"], target_id)
                continue
            if target_id in path:
                self.log.warning("Cycle in child edges at %s -> %s; branch truncated",
                                 individual["id"], target_id)
                self.cycles.append((individual["id"], target_id))
                continue
            node.children.append(self._build_node(child, depth + 1, node, path))
        return node


def build_tree(root: Optional[dict], individuals: Iterable[dict], edges: Iterable[dict],
               logger: Optional[logging.Logger] = None) -> Optional[TreeNode]:
    if root is None:
        return None
    return TreeBuilder(individuals, edges, logger=logger).build(root)


class ExpansionState:
    """Per-view expand/collapse overrides keyed by individual id.

    An override always wins over the node's own ``is_expanded``; rebuilding
    the tree does not touch the overrides.
    """

    def __init__(self, overrides: Optional[Dict] = None):
        self.overrides: Dict = dict(overrides or {})

    def is_expanded(self, node: TreeNode) -> bool:
        return self.overrides.get(node.id, node.is_expanded)

    def toggle(self, individual_id) -> bool:
        """Flip the id's effective expanded value and return the new value."""
        # Nodes are built expanded, so an id without an override is expanded.
        value = not self.overrides.get(individual_id, True)
        self.overrides[individual_id] = value
        return value


class TreeView:
    """State behind one interactive tree display.

    Holds the most recently built tree, the expansion overrides and the
    selected individual. ``on_add_child`` receives the parent individual when
    the user asks to add a child; creating the profile and edge is up to it.
    """

    def __init__(self, logger: Optional[logging.Logger] = None,
                 on_add_child: Optional[Callable[[dict], None]] = None,
                 expansion: Optional[ExpansionState] = None):
        self.log = logger or _default_logger
        self.on_add_child = on_add_child
        self.expansion = expansion or ExpansionState()
        self.root: Optional[dict] = None
        self.tree: Optional[TreeNode] = None
        self.selected: Optional[dict] = None
        self.cycles: List[Tuple] = []

    def refresh(self, individuals: Iterable[dict], edges: Iterable[dict]) -> Optional[TreeNode]:
        builder = TreeBuilder(individuals, edges, logger=self.log)
        self.root = builder.find_root()
        self.tree = builder.build(self.root) if self.root is not None else None
        self.cycles = builder.cycles
        if self.tree is not None:
            self.log.debug("Built tree rooted at %s with %d nodes",
                           self.root["id"], sum(1 for _ in self.tree.walk()))
        return self.tree

    def is_expanded(self, node: TreeNode) -> bool:
        return self.expansion.is_expanded(node)

    def toggle(self, individual_id) -> bool:
        return self.expansion.toggle(individual_id)

    def set_selected(self, individual: Optional[dict]):
        self.selected = individual

    def is_selected(self, node: TreeNode) -> bool:
        return self.selected is not None and self.selected.get("id") == node.id

    def add_child(self, parent: dict):
        if self.on_add_child is None:
            self.log.debug("No add-child handler for individual %s", parent.get("id"))
            return
        self.on_add_child(parent)

    def visible_nodes(self) -> List[TreeNode]:
        """Nodes a display would show: pre-order, skipping below collapsed nodes."""
        visible: List[TreeNode] = []

        def visit(node: TreeNode):
            visible.append(node)
            if self.is_expanded(node):
                for child in node.children:
                    visit(child)

        if self.tree is not None:
            visit(self.tree)
        return visible

    def node_to_dict(self, node: TreeNode) -> dict:
        return {
            "individual": node.individual,
            "depth": node.depth,
            "is_expanded": self.is_expanded(node),
            "is_selected": self.is_selected(node),
            "children": [self.node_to_dict(c) for c in node.children],
        }

    def to_dict(self) -> dict:
        return {
            "root_id": self.root["id"] if self.root is not None else None,
            "tree": self.node_to_dict(self.tree) if self.tree is not None else None,
            "cycles": [list(c) for c in self.cycles],
        }
