"""In-memory graph models for compiled Attractor workflows (the Graph IR).

The Graph IR is the sole artifact handed to an execution engine.  It is fully
independent of the workflow AST it was lowered from: every attribute a
runner needs is copied into the ``attrs`` bags of nodes and edges.

Design notes:
- ``@dataclass`` (not Pydantic) because the graph is an in-memory structure
  built once by lowering; the only in-place mutation after construction is
  the model stylesheet cascade writing into ``Node.attrs``.
- Typed ``@property`` accessors surface the attributes the compiler and
  engine care about, while ``attrs`` retains the full raw attribute bag.
- Adjacency indices (``_edges_from``, ``_edges_to``) are built once in
  ``__post_init__`` so that edge lookups during traversal are O(1).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Shape conventions
# ---------------------------------------------------------------------------

START_NODE_ID = "__start__"

# Stage kind each shape stands for; ``start`` is the synthetic entry node.
SHAPE_TO_KIND: dict[str, str] = {
    "Mdiamond": "start",
    "Msquare": "exit",
    "box": "llm",
    "diamond": "decision",
    "hexagon": "human",
    "parallelogram": "tool",
}


# ---------------------------------------------------------------------------
# Edge
# ---------------------------------------------------------------------------

@dataclass
class Edge:
    """A directed edge between two nodes.

    Attributes:
        source: Source node ID.
        target: Target node ID.
        attrs:  Raw attribute bag.  ``condition`` holds an AND-only condition
                string (empty string means unconditional), ``label`` an
                optional display label and ``weight`` an optional priority.
    """

    source: str
    target: str
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        """Stable string identifier for this edge (used in logging)."""
        return f"{self.source}->{self.target}"

    @property
    def condition(self) -> str:
        """Condition string.  Empty string if unconditional."""
        return self.attrs.get("condition") or ""

    @property
    def label(self) -> str:
        """Human-readable label.  Empty string if not set."""
        return self.attrs.get("label") or ""

    @property
    def weight(self) -> float | None:
        """Numeric weight, or ``None`` when unset or not numeric."""
        raw = self.attrs.get("weight")
        if raw is None:
            return None
        try:
            return float(raw)
        except (ValueError, TypeError):
            return None


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

@dataclass
class Node:
    """A graph node.

    Attributes:
        id:    Node identifier (stage id, or ``__start__``).
        attrs: Full raw attribute bag.  ``shape`` encodes the stage kind.
    """

    id: str
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def shape(self) -> str:
        return self.attrs.get("shape", "box")

    @property
    def label(self) -> str:
        return self.attrs.get("label") or self.id

    @property
    def kind(self) -> str:
        """Stage kind encoded by the shape, ``"unknown"`` for foreign shapes."""
        return SHAPE_TO_KIND.get(self.shape, "unknown")

    @property
    def is_start(self) -> bool:
        return self.shape == "Mdiamond"

    @property
    def is_exit(self) -> bool:
        return self.shape == "Msquare"

    @property
    def prompt(self) -> str:
        """LLM or human prompt.  Empty string if not set."""
        return self.attrs.get("prompt", "")

    @property
    def classes(self) -> list[str]:
        """Stylesheet classes from the comma-separated ``class`` attribute."""
        raw = self.attrs.get("class") or ""
        return [c.strip() for c in str(raw).split(",") if c.strip()]

    @property
    def llm_model(self) -> str:
        return self.attrs.get("llm_model", "")

    @property
    def llm_provider(self) -> str:
        return self.attrs.get("llm_provider", "")

    @property
    def reasoning_effort(self) -> str:
        return self.attrs.get("reasoning_effort", "")

    @property
    def max_retries(self) -> int:
        """Additional attempts beyond the first.  Defaults to 0."""
        try:
            return int(self.attrs.get("max_retries", 0))
        except (ValueError, TypeError):
            return 0


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

@dataclass
class Graph:
    """Compiled workflow graph.

    Attributes:
        name:          Workflow name.
        attrs:         Graph-level attribute bag (``goal``, ``label``,
                       ``model_stylesheet``).
        nodes:         Dict mapping node ID → ``Node`` in declaration order.
        edges:         Ordered list of all edges.  Order is significant:
                       first-match-wins routing follows it.
        node_defaults: Default node attributes (never merged into nodes).
        edge_defaults: Default edge attributes (never merged into edges).
    """

    name: str
    attrs: dict[str, Any] = field(default_factory=dict)
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    node_defaults: dict[str, Any] = field(default_factory=dict)
    edge_defaults: dict[str, Any] = field(default_factory=dict)

    # Cached adjacency, built in __post_init__
    _edges_from: dict[str, list[Edge]] = field(
        default_factory=dict, repr=False, compare=False
    )
    _edges_to: dict[str, list[Edge]] = field(
        default_factory=dict, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._build_adjacency()

    def _build_adjacency(self) -> None:
        self._edges_from = {}
        self._edges_to = {}
        for edge in self.edges:
            self._edges_from.setdefault(edge.source, []).append(edge)
            self._edges_to.setdefault(edge.target, []).append(edge)

    # ------------------------------------------------------------------
    # Traversal helpers
    # ------------------------------------------------------------------

    def edges_from(self, node_id: str) -> list[Edge]:
        """Return all outgoing edges from *node_id* in declaration order."""
        return list(self._edges_from.get(node_id, []))

    def edges_to(self, node_id: str) -> list[Edge]:
        """Return all incoming edges to *node_id* in declaration order."""
        return list(self._edges_to.get(node_id, []))

    def node(self, node_id: str) -> Node:
        """Retrieve a node by ID.

        Raises:
            KeyError: If *node_id* is not present in the graph.
        """
        return self.nodes[node_id]

    @property
    def start_node(self) -> Node:
        """The unique start node (``Mdiamond`` shape).

        Raises:
            ValueError: If the graph has zero or more than one start node.
        """
        starts = [n for n in self.nodes.values() if n.is_start]
        if len(starts) != 1:
            raise ValueError(
                f"Graph must have exactly one start node (Mdiamond); found {len(starts)}"
            )
        return starts[0]

    @property
    def exit_nodes(self) -> list[Node]:
        """All exit nodes (``Msquare`` shape) in declaration order."""
        return [n for n in self.nodes.values() if n.is_exit]

    @property
    def goal(self) -> str:
        return self.attrs.get("goal") or ""

    @property
    def model_stylesheet(self) -> str:
        return self.attrs.get("model_stylesheet") or ""

    def all_node_ids(self) -> list[str]:
        """Return all node IDs in insertion order."""
        return list(self.nodes.keys())

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view of the graph for JSON output."""
        return {
            "name": self.name,
            "attrs": dict(self.attrs),
            "nodes": [{"id": n.id, "attrs": dict(n.attrs)} for n in self.nodes.values()],
            "edges": [
                {"from": e.source, "to": e.target, "attrs": dict(e.attrs)}
                for e in self.edges
            ],
            "node_defaults": dict(self.node_defaults),
            "edge_defaults": dict(self.edge_defaults),
        }

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes
