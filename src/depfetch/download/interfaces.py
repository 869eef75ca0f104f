"""
Core Interfaces for the depfetch Download Subsystem

This module defines the data structures shared by the cache, fetcher,
resolver, graph builder and orchestrator, plus the abstract collaborators
(persistent store, host downloader) they are wired to.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from depfetch.constants import TARBALL_EXTENSION

Pathish = Union[str, Path]


@dataclass(frozen=True)
class PackageMetadata:
    """Metadata of the latest version of a package, as served by the registry."""

    name: str
    """Package name (e.g. 'lodash' or '@babel/core')"""

    version: str
    """Version string of the 'latest' release"""

    description: Optional[str] = None
    """Free-text package description"""

    dependencies: Dict[str, str] = field(default_factory=dict)
    """Direct runtime dependencies: name -> version range"""

    tarball_url: Optional[str] = None
    """URL of the packaged artifact (dist.tarball)"""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackageMetadata":
        """
        Build metadata from a registry-shaped mapping.

        Raises:
            ValueError: If `name` or `version` is missing or not a string, or
                `dependencies` is present but not a mapping.
        """
        name = data.get("name")
        version = data.get("version")
        if not isinstance(name, str) or not name:
            raise ValueError("metadata is missing a package name")
        if not isinstance(version, str) or not version:
            raise ValueError(f"metadata for {name} is missing a version")

        raw_deps = data.get("dependencies") or {}
        if not isinstance(raw_deps, Mapping):
            raise ValueError(
                f"dependencies of {name} must be an object, got {type(raw_deps).__name__}"
            )

        description = data.get("description")
        dist = data.get("dist")
        tarball = dist.get("tarball") if isinstance(dist, Mapping) else None

        return cls(
            name=name,
            version=version,
            description=description if isinstance(description, str) else None,
            dependencies={str(k): str(v) for k, v in raw_deps.items()},
            tarball_url=tarball if isinstance(tarball, str) and tarball else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the registry-shaped mapping used for persistence."""
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "dependencies": dict(self.dependencies),
        }
        if self.description is not None:
            data["description"] = self.description
        if self.tarball_url:
            data["dist"] = {"tarball": self.tarball_url}
        return data


@dataclass(frozen=True)
class Expansion:
    """Outcome of expanding a single node during a traversal."""

    name: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    """Failure message; the node is then treated as having no dependencies"""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class GraphNode:
    id: str


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str


@dataclass
class Graph:
    """Bounded dependency graph handed to a renderer."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        """Serialize to the force-layout shape: {"nodes": [{"id"}], "links": [{"source", "target"}]}."""
        return {
            "nodes": [{"id": node.id} for node in self.nodes],
            "links": [
                {"source": edge.source, "target": edge.target} for edge in self.edges
            ],
        }

    def to_dot(self, graph_name: str = "dependencies") -> str:
        """Serialize to Graphviz DOT text."""

        def quote(value: str) -> str:
            return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'

        lines = [f"digraph {quote(graph_name)} {{"]
        for node in self.nodes:
            lines.append(f"  {quote(node.id)};")
        for edge in self.edges:
            lines.append(f"  {quote(edge.source)} -> {quote(edge.target)};")
        lines.append("}")
        return "\n".join(lines)


@dataclass(frozen=True)
class DownloadTask:
    """A tarball handed to the host download collaborator."""

    name: str
    tarball_url: str

    @property
    def filename(self) -> str:
        """Suggested filename, `<name>.tgz`."""
        return f"{self.name}{TARBALL_EXTENSION}"


@dataclass(frozen=True)
class DownloadProgress:
    completed: int
    total: int
    cancelled: bool = False

    @property
    def remaining(self) -> int:
        return max(self.total - self.completed, 0)

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return round(self.completed * 100 / self.total)


@dataclass
class DownloadSummary:
    """Result of a batch download run."""

    completed: int
    """Names processed (downloaded or skipped)"""

    total: int
    """Names in the batch"""

    was_cancelled: bool = False
    """Whether the batch stopped early on user request"""

    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class DownloadResult:
    """Result of a single host download request."""

    success: bool
    """Whether the file was written"""

    name: Optional[str] = None
    """Suggested filename the request was made with"""

    url: Optional[str] = None
    """Source URL"""

    file_path: Optional[Pathish] = None
    """Path to the downloaded file (if successful)"""

    error_message: Optional[str] = None
    """Error message (if failed)"""

    http_status_code: Optional[int] = None
    """HTTP status code if the download failed due to an HTTP error"""


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CancellationToken:
    """
    Cooperative cancellation flag polled by long-running loops.

    Cancelling never interrupts work already in flight; it only stops the next
    iteration from starting.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class PersistentStore(ABC):
    """
    Abstract asynchronous key-value store backing the metadata cache.

    Implementations may raise StorageError; callers treat every failure as
    best-effort and never let it fail the operation that triggered it.
    """

    @abstractmethod
    async def load(self, key: str) -> Optional[Any]:
        """
        Return the value stored under `key`, or None when absent.
        """

    @abstractmethod
    async def save(self, key: str, value: Any) -> None:
        """
        Store a JSON-serializable `value` under `key`, replacing any previous value.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Remove `key`; deleting a missing key is not an error.
        """


class DownloadCollaborator(ABC):
    """
    Abstract host download primitive.

    `request` accepts a download and returns a future that resolves exactly
    once with a DownloadResult, whether the download succeeded or failed.
    """

    @abstractmethod
    async def request(
        self, url: str, suggested_filename: str
    ) -> "asyncio.Future[DownloadResult]":
        """
        Accept a download of `url` saved as `suggested_filename`.

        Returns:
            asyncio.Future[DownloadResult]: Completion signal for this request.
        """
