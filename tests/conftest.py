from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import platformdirs
import pytest

from tests.async_test_utils import (
    REGISTRY,
    FakeRegistryClient,
    RecordingCollaborator,
    make_package,
)

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG` explaining that async network access is blocked.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as an asyncio test")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs and the depfetch configuration paths into a temporary directory tree.

    Also clears DEPFETCH_LOG_LEVEL so the console log level is predictable.
    """
    base = tmp_path_factory.mktemp("depfetch")
    cache_dir = base / "cache"
    config_dir = base / "config"
    downloads_dir = base / "downloads"
    log_dir = base / "log"

    for path in (cache_dir, config_dir, downloads_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.delenv("DEPFETCH_LOG_LEVEL", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )

    import depfetch.config as depfetch_config

    monkeypatch.setattr(depfetch_config, "CONFIG_DIR", str(config_dir))
    monkeypatch.setattr(
        depfetch_config,
        "CONFIG_FILE",
        str(Path(config_dir) / depfetch_config.CONFIG_FILE_NAME),
    )
    monkeypatch.setattr(
        depfetch_config, "get_downloads_dir", lambda: str(downloads_dir)
    )


def pytest_runtest_setup():
    """Replace aiohttp's HTTP entry points with a blocker so no test reaches the network."""
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.post = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.head = _async_block_network  # type: ignore[assignment]


# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def sample_packages():
    """
    A small registry with a diamond, a cycle and a package without a tarball.

        app -> left, right
        left -> shared
        right -> shared, cyc-a
        cyc-a -> cyc-b -> cyc-a
        notarball (no dist)
    """
    return {
        "app": make_package("app", ["left", "right"]),
        "left": make_package("left", ["shared"]),
        "right": make_package("right", ["shared", "cyc-a"]),
        "shared": make_package("shared"),
        "cyc-a": make_package("cyc-a", ["cyc-b"]),
        "cyc-b": make_package("cyc-b", ["cyc-a"]),
        "notarball": make_package("notarball", tarball=False),
    }


@pytest.fixture
def fake_client(sample_packages):
    """A FakeRegistryClient serving `sample_packages`."""
    return FakeRegistryClient(sample_packages)


@pytest.fixture
def collaborator():
    """A download collaborator that records requests and succeeds immediately."""
    return RecordingCollaborator()


@pytest.fixture
def stack(fake_client, collaborator):
    """
    Wire the download subsystem over the fake registry.

    Returns:
        SimpleNamespace: client, store, cache, fetcher, resolver, graph, collaborator, orchestrator.
    """
    from depfetch.download.cache import MetadataCache
    from depfetch.download.fetcher import MetadataFetcher
    from depfetch.download.graph import GraphBuilder
    from depfetch.download.orchestrator import DownloadOrchestrator
    from depfetch.download.resolver import DependencyResolver
    from depfetch.download.storage import MemoryStore

    store = MemoryStore()
    cache = MetadataCache(store)
    fetcher = MetadataFetcher(fake_client, cache)
    resolver = DependencyResolver(fetcher)
    return SimpleNamespace(
        registry=REGISTRY,
        client=fake_client,
        store=store,
        cache=cache,
        fetcher=fetcher,
        resolver=resolver,
        graph=GraphBuilder(resolver),
        collaborator=collaborator,
        orchestrator=DownloadOrchestrator(fetcher, resolver, collaborator),
    )


# =============================================================================
# aiohttp Fixtures
# =============================================================================


@pytest.fixture
def mock_async_response(mocker):
    """
    Provide a factory for mocked aiohttp responses usable as `async with session.get(...)`.

    The factory accepts `status`, `reason`, `text`, `headers` and `content_chunks`.
    """

    def _create_response(
        status=200, reason="OK", text="", headers=None, content_chunks=None
    ):
        response = AsyncMock()
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        response.status = status
        response.reason = reason
        response.headers = headers or {}
        response.text = AsyncMock(return_value=text)

        async def _async_iter_chunks():
            for chunk in content_chunks or []:
                yield chunk

        mock_content = mocker.MagicMock()
        mock_content.iter_chunked = mocker.Mock(return_value=_async_iter_chunks())
        response.content = mock_content
        return response

    return _create_response
