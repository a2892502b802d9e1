"""
Followgraph - follow-network acquisition and graph building for Bilibili

Fetches a user's followings from the rate-limited relation API, collects the
common followings of each of them, and builds a deduplicated graph with
bidirectional edges, degrees and render sizes.
"""

__version__ = "0.1.0"
