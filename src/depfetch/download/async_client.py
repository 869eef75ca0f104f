"""
Async HTTP Client for depfetch

This module provides asynchronous HTTP operations using aiohttp, with
session management and error handling for:
- Registry metadata requests (raw status/body; classification lives in the fetcher)
- Tarball downloads streamed to disk with atomic replacement
"""

import asyncio
import importlib.metadata
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import aiofiles  # type: ignore[import-untyped]
import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from depfetch.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_CHUNK_SIZE,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
    HTTP_STATUS_ERROR_THRESHOLD,
    REGISTRY_ACCEPT_HEADER,
)
from depfetch.exceptions import DownloadError, NetworkError
from depfetch.log_utils import logger

from .interfaces import Pathish

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `depfetch/{version}`, where `{version}` is the installed package version or `unknown`.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("depfetch")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"
        _USER_AGENT_CACHE = f"depfetch/{app_version}"

    return _USER_AGENT_CACHE


@dataclass(frozen=True)
class RawResponse:
    """Status line and decoded body of a completed HTTP exchange."""

    status: int
    reason: Optional[str]
    text: str


class AsyncRegistryClient:
    """
    Asynchronous registry client using aiohttp.

    Requests are issued one at a time by the callers; the connection pool is
    kept small accordingly.

    Example:
        async with AsyncRegistryClient() as client:
            response = await client.get_text("https://registry.npmjs.org/lodash/latest")
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        connector_limit: int = 2,
    ) -> None:
        """
        Initialize the async registry client.

        Parameters:
            timeout (Optional[float]): Total request timeout in seconds; None disables the timeout.
            connector_limit (int): Maximum total connections in the pool.
        """
        self.timeout = ClientTimeout(total=timeout)
        self.connector_limit = max(1, int(connector_limit))
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "AsyncRegistryClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                limit=self.connector_limit,
                enable_cleanup_closed=True,
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers=self._get_default_headers(),
            )
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        return {
            "Accept": REGISTRY_ACCEPT_HEADER,
            "User-Agent": get_user_agent(),
        }

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_text(self, url: str) -> RawResponse:
        """
        Perform a GET request and return the status and body text, whatever the status.

        Raises:
            NetworkError: If no response could be obtained (connection, DNS, TLS, timeout).
        """
        session = await self._ensure_session()
        try:
            async with session.get(url) as response:
                text = await response.text(errors="replace")
                logger.debug(f"GET {url} -> {response.status}")
                return RawResponse(
                    status=response.status, reason=response.reason, text=text
                )
        except asyncio.TimeoutError as e:
            logger.debug(f"Timed out requesting {url}")
            raise NetworkError("Network error: request timed out", url=url) from e
        except aiohttp.ClientError as e:
            logger.debug(f"Network error requesting {url}: {e}")
            raise NetworkError(f"Network error: {e}", url=url) from e

    async def download_file(
        self,
        url: str,
        target_path: Pathish,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """
        Download a file to the given path with atomic replacement.

        Parameters:
            url (str): Source URL to download.
            target_path (Pathish): Destination file path; parent directories are created if missing.
            chunk_size (int): Number of bytes to read per chunk.

        Returns:
            int: Number of bytes written.

        Raises:
            DownloadError: On HTTP, network or filesystem failures. The temporary file is removed.
        """
        session = await self._ensure_session()
        target = Path(target_path)
        temp_path = target.with_name(
            f"{target.name}.tmp.{os.getpid()}.{int(time.time() * 1000)}"
        )

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            start_time = time.time()

            async with session.get(url) as response:
                if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                    raise DownloadError(
                        f"HTTP error {response.status}",
                        url=url,
                        status_code=response.status,
                    )

                downloaded = 0

                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(chunk_size):
                        await f.write(chunk)
                        downloaded += len(chunk)

            temp_path.replace(target)

            elapsed = time.time() - start_time
            file_size_mb = downloaded / BYTES_PER_MEGABYTE
            logger.debug(f"Downloaded {url} in {elapsed:.2f}s ({file_size_mb:.2f} MB)")
            if file_size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
                logger.info(f"Downloaded: {target.name} ({file_size_mb:.1f} MB)")
            else:
                logger.info(f"Downloaded: {target.name} ({downloaded} bytes)")
            return downloaded

        except DownloadError:
            _remove_quietly(temp_path)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            _remove_quietly(temp_path)
            raise DownloadError(f"Download failed: {e}", url=url) from e
        except OSError as e:
            _remove_quietly(temp_path)
            raise DownloadError(f"Filesystem error: {e}", url=url) from e


def _remove_quietly(path: Path) -> None:
    if path.exists():
        try:
            path.unlink()
        except OSError:
            pass


@asynccontextmanager
async def create_async_client(
    timeout: Optional[float] = None,
) -> AsyncIterator[AsyncRegistryClient]:
    """
    Provide a configured AsyncRegistryClient and ensure it is closed after use.
    """
    client = AsyncRegistryClient(timeout=timeout)
    try:
        yield client
    finally:
        await client.close()
