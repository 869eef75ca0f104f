"""
depfetch Download Subsystem

Metadata lookup, dependency traversal and tarball downloading for package
registries, built around a cache-first fetch path and a single asyncio loop.

Core Components:
- interfaces: Data types and abstract collaborators
- storage: Persistent stores backing the metadata cache
- cache: Session metadata cache with single in-flight loads
- async_client: aiohttp registry client
- fetcher: Cache-first metadata lookup and response classification
- resolver: Transitive dependency resolution
- graph: Bounded dependency graph construction
- downloader: Host download collaborator writing tarballs to disk
- orchestrator: Sequential batch downloads with progress and cancellation
- session: Browse navigation with history
"""

from .async_client import AsyncRegistryClient, create_async_client
from .cache import MetadataCache, make_cache_key
from .downloader import TarballDownloader
from .fetcher import MetadataFetcher
from .graph import GraphBuilder
from .interfaces import (
    CancellationToken,
    DownloadCollaborator,
    DownloadProgress,
    DownloadResult,
    DownloadSummary,
    DownloadTask,
    Expansion,
    Graph,
    GraphEdge,
    GraphNode,
    OrchestratorState,
    PackageMetadata,
    PersistentStore,
)
from .orchestrator import DownloadOrchestrator
from .resolver import DependencyResolver
from .session import BrowseSession, PackageView
from .storage import JsonFileStore, MemoryStore

__all__ = [
    # Interfaces
    "PackageMetadata",
    "Expansion",
    "Graph",
    "GraphNode",
    "GraphEdge",
    "DownloadTask",
    "DownloadProgress",
    "DownloadSummary",
    "DownloadResult",
    "OrchestratorState",
    "CancellationToken",
    "PersistentStore",
    "DownloadCollaborator",
    # Storage and cache
    "JsonFileStore",
    "MemoryStore",
    "MetadataCache",
    "make_cache_key",
    # Network
    "AsyncRegistryClient",
    "create_async_client",
    "MetadataFetcher",
    # Traversal
    "DependencyResolver",
    "GraphBuilder",
    # Downloads
    "TarballDownloader",
    "DownloadOrchestrator",
    # Browsing
    "BrowseSession",
    "PackageView",
]
