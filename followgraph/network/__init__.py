"""Network package: acquisition pipeline and graph construction for follow networks.

Provides:
- BiliClient: Rate-limited sync HTTP client with retry/backoff for the Bilibili relation API
- CacheStore: Filesystem cache with per-entry TTL for API responses
- RequestDeduplicator: Shares one in-flight call between concurrent callers
- PaginatedFetcher / CommonFollowingsAggregator: Fetch stages
- GraphBuilder: Deduplicated, annotated graph for rendering
- FollowGraphPipeline: Runs the stages with one shared client context
"""

from followgraph.network.cache import CacheStore
from followgraph.network.client import BiliClient, RateLimiter, RequestResult
from followgraph.network.control import PipelineControl
from followgraph.network.dedup import RequestDeduplicator
from followgraph.network.fetcher import CommonFollowingsAggregator, PaginatedFetcher
from followgraph.network.graph import GraphBuilder, build_graph
from followgraph.network.pipeline import FollowGraphPipeline
from followgraph.network.retry import RetryPolicy

__all__ = [
    "BiliClient",
    "CacheStore",
    "CommonFollowingsAggregator",
    "FollowGraphPipeline",
    "GraphBuilder",
    "PaginatedFetcher",
    "PipelineControl",
    "RateLimiter",
    "RequestDeduplicator",
    "RequestResult",
    "RetryPolicy",
    "build_graph",
]
