"""Graph construction from a follow list and its common-followings map.

Nodes are the users the session user follows; an edge (a, b) means ``b``
shows up in ``a``'s common followings, i.e. ``a`` follows ``b`` and both are
inside the follow set. Everything here is pure; no I/O.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from followgraph.models import (
    GraphEdge,
    GraphNode,
    GraphResult,
    GraphStats,
    SizeParams,
    UserIdentity,
)

logger = logging.getLogger(__name__)

FollowEntry = Union[UserIdentity, Mapping[str, Any]]


def render_size(degree: int, params: SizeParams) -> float:
    """Logarithmic growth capped at ``max_size``."""
    return min(math.log(degree + 1) * params.size_multiplier, params.max_size)


class GraphBuilder:
    """Build deduplicated, annotated graphs for rendering."""

    def __init__(self, size_params: Optional[SizeParams] = None) -> None:
        self._params = size_params or SizeParams()

    def build(
        self,
        follow_list: Iterable[FollowEntry],
        common_map: Mapping[int, Iterable[int]],
        size_params: Optional[SizeParams] = None,
    ) -> GraphResult:
        params = size_params or self._params

        identities = _unique_identities(follow_list)
        pairs = _collect_pairs(identities, common_map)

        bidirectional = {pair for pair in pairs if (pair[1], pair[0]) in pairs}

        degree: Counter = Counter()
        for source, target in pairs:
            degree[source] += 1
            degree[target] += 1

        edges: List[GraphEdge] = []
        for pair in pairs:
            source, target = pair
            if params.swap_link_direction:
                source, target = target, source
            edges.append(
                GraphEdge(
                    source=str(source),
                    target=str(target),
                    bidirectional=pair in bidirectional,
                )
            )

        nodes = [
            GraphNode(
                id=str(mid),
                label=identity.name or str(mid),
                is_vip=identity.is_vip,
                degree=degree[mid],
                render_size=render_size(degree[mid], params),
            )
            for mid, identity in identities.items()
            if degree[mid] > 0
        ]

        stats = GraphStats(
            total_nodes=len(identities),
            connected_nodes=len(nodes),
            edge_count=len(edges),
        )
        logger.info(
            "Built graph: %d/%d nodes connected (%d isolated), %d edges (%d bidirectional)",
            stats.connected_nodes,
            stats.total_nodes,
            stats.total_nodes - stats.connected_nodes,
            stats.edge_count,
            len(bidirectional),
        )
        return GraphResult(nodes=nodes, edges=edges, stats=stats)


def build_graph(
    follow_list: Iterable[FollowEntry],
    common_map: Mapping[int, Iterable[int]],
    size_params: Optional[SizeParams] = None,
) -> GraphResult:
    """Convenience wrapper around GraphBuilder().build()."""
    return GraphBuilder(size_params).build(follow_list, common_map)


def _unique_identities(follow_list: Iterable[FollowEntry]) -> Dict[int, UserIdentity]:
    """Dedupe by mid; first position is kept, the latest data wins."""
    identities: Dict[int, UserIdentity] = {}
    for entry in follow_list:
        identity = entry if isinstance(entry, UserIdentity) else UserIdentity.from_api(entry)
        identities[identity.mid] = identity
    return identities


def _collect_pairs(
    identities: Mapping[int, UserIdentity],
    common_map: Mapping[int, Iterable[int]],
) -> Dict[Tuple[int, int], None]:
    # dict keeps insertion order, which keeps edge output stable
    pairs: Dict[Tuple[int, int], None] = {}
    for mid in identities:
        for other in common_map.get(mid) or ():
            if other == mid or other not in identities:
                continue
            pairs.setdefault((mid, other), None)
    return pairs
