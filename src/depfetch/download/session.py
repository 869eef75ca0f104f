"""
Browse Session

Navigation state for interactively exploring a registry: the package being
viewed, a history stack for going back, and on-demand expansion of a
dependency's own dependencies.
"""

from dataclasses import dataclass
from typing import List, Optional

from depfetch.log_utils import logger

from .interfaces import Expansion, PackageMetadata
from .resolver import DependencyResolver


@dataclass(frozen=True)
class PackageView:
    registry: str
    name: str
    metadata: PackageMetadata


class BrowseSession:
    """
    Package navigation with back history.

    Opening a package pushes the previously viewed one onto the history
    stack; going back pops it. Failed lookups leave the session unchanged.
    """

    def __init__(self, resolver: DependencyResolver, registry: str) -> None:
        self.resolver = resolver
        self.registry = registry
        self.current: Optional[PackageView] = None
        self.history: List[PackageView] = []

    @property
    def can_go_back(self) -> bool:
        return bool(self.history)

    async def search(self, name: str) -> PackageView:
        """Start a fresh navigation at `name`, discarding the history."""
        view = await self.open(name, push_history=False)
        self.history = []
        return view

    async def open(self, name: str, push_history: bool = True) -> PackageView:
        """
        View package `name`.

        Raises:
            MetadataError: If the package cannot be fetched.
        """
        metadata = await self.resolver.fetcher.fetch(self.registry, name)
        if push_history and self.current is not None:
            self.history.append(self.current)
        self.current = PackageView(registry=self.registry, name=name, metadata=metadata)
        logger.debug(f"Viewing {name}@{metadata.version}")
        return self.current

    async def back(self) -> Optional[PackageView]:
        """Return to the previously viewed package, or None if there is none."""
        if not self.history:
            return None
        previous = self.history[-1]
        metadata = await self.resolver.fetcher.fetch(previous.registry, previous.name)
        self.history.pop()
        self.current = PackageView(
            registry=previous.registry, name=previous.name, metadata=metadata
        )
        return self.current

    async def expand(self, name: str) -> Expansion:
        """Look up the direct dependencies of `name` without navigating to it."""
        return await self.resolver.expand(self.registry, name)
