"""
Dependency Resolver

Breadth-first expansion of a root package into the flat set of every
package name reachable through its dependencies.
"""

from collections import deque
from typing import Any, Callable, Deque, List, Optional, Set

from depfetch.exceptions import MetadataError
from depfetch.log_utils import logger

from .fetcher import MetadataFetcher
from .interfaces import Expansion

# Called with (name just expanded, names still queued)
VisitCallback = Callable[[str, int], Any]


class DependencyResolver:
    """Resolve transitive dependency names through a MetadataFetcher."""

    def __init__(self, fetcher: MetadataFetcher) -> None:
        self.fetcher = fetcher

    async def expand(self, registry: str, name: str) -> Expansion:
        """
        Fetch `name` and return its direct dependencies.

        Lookup failures do not raise: they come back as an Expansion with
        `error` set and no dependencies.
        """
        try:
            metadata = await self.fetcher.fetch(registry, name)
        except MetadataError as e:
            logger.warning(f"Could not expand {name}: {e}")
            return Expansion(name=name, error=str(e))
        return Expansion(name=name, dependencies=dict(metadata.dependencies))

    async def resolve_transitive(
        self,
        registry: str,
        root_name: str,
        on_visit: Optional[VisitCallback] = None,
    ) -> List[str]:
        """
        Return every package name reachable from `root_name`, root excluded.

        Names are listed in breadth-first discovery order. Each name is queued
        at most once, so cyclic dependency graphs terminate. A package whose
        metadata cannot be fetched contributes no further names.

        Parameters:
            registry (str): Registry base URL.
            root_name (str): Package to start from.
            on_visit (Optional[VisitCallback]): Called after each expansion with the
                expanded name and the current queue length.
        """
        frontier: Deque[str] = deque([root_name])
        seen: Set[str] = {root_name}
        discovered: List[str] = []

        while frontier:
            current = frontier.popleft()
            expansion = await self.expand(registry, current)
            for dep_name in expansion.dependencies:
                if dep_name not in seen:
                    seen.add(dep_name)
                    discovered.append(dep_name)
                    frontier.append(dep_name)
            if on_visit is not None:
                on_visit(current, len(frontier))

        logger.debug(
            f"Resolved {len(discovered)} transitive dependencies for {root_name}"
        )
        return discovered
