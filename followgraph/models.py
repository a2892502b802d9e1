"""
Followgraph Data Models

File Purpose: Core data structures for fetched identities, cache records and built graphs
Primary Functions/Classes: UserIdentity, CacheEntry, SizeParams, GraphNode, GraphEdge, GraphStats, GraphResult
Inputs and Outputs (I/O): Data structure definitions, no direct I/O operations

The graph types are what rendering front-ends consume; everything upstream of
GraphBuilder works with raw API dicts and UserIdentity.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import networkx as nx
from rich.console import Console

# Shared console instance for all followgraph modules
console = Console()

# Bumped whenever the persisted cache record layout changes
CACHE_RECORD_VERSION = 1


@dataclass(frozen=True)
class UserIdentity:
    """A user as returned in relation list items."""

    mid: int
    name: str = ""
    avatar: str = ""
    is_vip: bool = False

    @classmethod
    def from_api(cls, item: Mapping[str, Any]) -> "UserIdentity":
        """Build from a raw ``data.list`` entry of the relation endpoints."""
        vip = item.get("vip")
        if not isinstance(vip, Mapping):
            vip = {}
        return cls(
            mid=int(item["mid"]),
            name=item.get("uname") or "",
            avatar=item.get("face") or "",
            is_vip=bool(vip.get("vipStatus", 0)),
        )


@dataclass
class CacheEntry:
    """Versioned cache record; ``expiry`` is epoch milliseconds."""

    data: Any
    expiry: int
    version: int = CACHE_RECORD_VERSION

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expiry

    def to_record(self) -> Dict[str, Any]:
        return {"version": self.version, "data": self.data, "expiry": self.expiry}

    @classmethod
    def from_record(cls, record: Any) -> Optional["CacheEntry"]:
        """Return an entry, or None when the record does not have the expected shape."""
        if not isinstance(record, dict):
            return None
        if record.get("version") != CACHE_RECORD_VERSION:
            return None
        expiry = record.get("expiry")
        if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
            return None
        if "data" not in record:
            return None
        return cls(data=record["data"], expiry=int(expiry))


@dataclass
class SizeParams:
    """Node sizing and link direction settings for GraphBuilder."""

    size_multiplier: float = 0.1
    max_size: float = 2.0
    swap_link_direction: bool = True


@dataclass
class GraphNode:
    id: str
    label: str
    is_vip: bool = False
    degree: int = 0
    render_size: float = 0.0


@dataclass
class GraphEdge:
    source: str
    target: str
    bidirectional: bool = False


@dataclass
class GraphStats:
    total_nodes: int = 0
    connected_nodes: int = 0
    edge_count: int = 0


@dataclass
class GraphResult:
    """Output of GraphBuilder: retained nodes, directed edges and summary stats."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    stats: GraphStats = field(default_factory=GraphStats)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation."""
        return {
            "nodes": [asdict(node) for node in self.nodes],
            "edges": [asdict(edge) for edge in self.edges],
            "stats": asdict(self.stats),
        }

    def to_networkx(self) -> nx.DiGraph:
        """Directed graph with node and edge attributes for analysis tooling."""
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(
                node.id,
                label=node.label,
                is_vip=node.is_vip,
                degree=node.degree,
                render_size=node.render_size,
            )
        for edge in self.edges:
            graph.add_edge(edge.source, edge.target, bidirectional=edge.bidirectional)
        graph.graph.update(asdict(self.stats))
        return graph
