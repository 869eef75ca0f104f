"""
Graph Builder

Bounded breadth-first traversal producing the node/edge list handed to a
graph renderer.
"""

from collections import deque
from typing import Deque, Dict, Set

from depfetch.constants import DEFAULT_MAX_GRAPH_NODES
from depfetch.log_utils import logger

from .cache import make_cache_key
from .interfaces import Expansion, Graph, GraphEdge, GraphNode
from .resolver import DependencyResolver


class GraphBuilder:
    """
    Build a dependency graph of at most `max_nodes` nodes.

    Shares the resolver's fetch path, but looks in the cache directly first
    since graphs are usually requested for packages that were just resolved.
    """

    def __init__(self, resolver: DependencyResolver) -> None:
        self.resolver = resolver

    @property
    def cache(self):
        return self.resolver.fetcher.cache

    async def _expand(self, registry: str, name: str) -> Expansion:
        cached = self.cache.get(make_cache_key(registry, name))
        if cached is not None:
            return Expansion(name=name, dependencies=dict(cached.dependencies))
        return await self.resolver.expand(registry, name)

    async def build_graph(
        self,
        registry: str,
        root_name: str,
        max_nodes: int = DEFAULT_MAX_GRAPH_NODES,
    ) -> Graph:
        """
        Traverse dependencies of `root_name` breadth-first into a Graph.

        Nodes are admitted in discovery order until `max_nodes` is reached.
        The neighbours of the node being expanded when the bound is hit are
        still scanned so that edges into already admitted nodes are recorded;
        no node is expanded after that. Edges only ever connect admitted
        nodes.

        Raises:
            ValueError: If `max_nodes` is less than 1.
        """
        if max_nodes < 1:
            raise ValueError(f"max_nodes must be >= 1, got {max_nodes}")

        graph = Graph()
        index: Dict[str, int] = {}
        frontier: Deque[str] = deque([root_name])
        seen: Set[str] = {root_name}

        truncated = False

        def admit(name: str) -> bool:
            nonlocal truncated
            if name in index:
                return True
            if len(graph.nodes) >= max_nodes:
                truncated = True
                return False
            index[name] = len(graph.nodes)
            graph.nodes.append(GraphNode(id=name))
            return True

        while frontier and len(graph.nodes) < max_nodes:
            current = frontier.popleft()
            admit(current)
            expansion = await self._expand(registry, current)
            for dep_name in expansion.dependencies:
                if not admit(dep_name):
                    continue
                graph.edges.append(GraphEdge(source=current, target=dep_name))
                if dep_name not in seen and len(graph.nodes) < max_nodes:
                    seen.add(dep_name)
                    frontier.append(dep_name)

        if truncated or frontier:
            logger.info(f"Graph for {root_name} truncated at {max_nodes} nodes")
        logger.debug(
            f"Built graph for {root_name}: {len(graph.nodes)} nodes, {len(graph.edges)} edges"
        )
        return graph
