"""
Tarball Downloader

Host download collaborator that streams tarballs into a download directory.
Each request returns a completion future that always resolves with a
DownloadResult; failures are reported in the result, never raised.
"""

import asyncio
import os
from pathlib import Path
from typing import List, Set

from depfetch.exceptions import DownloadError
from depfetch.log_utils import logger

from .async_client import AsyncRegistryClient
from .interfaces import DownloadCollaborator, DownloadResult, Pathish


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


class TarballDownloader(DownloadCollaborator):
    """Write requested tarballs below `download_dir`."""

    def __init__(self, client: AsyncRegistryClient, download_dir: Pathish) -> None:
        self.client = client
        self.download_dir = str(download_dir)
        self._pending: Set["asyncio.Task[DownloadResult]"] = set()

    def resolve_target(self, suggested_filename: str) -> Path:
        """
        Map a suggested filename onto a path inside the download directory.

        Scoped names such as `@scope/pkg.tgz` land in a `@scope` subdirectory.

        Raises:
            DownloadError: If the name is empty or would escape the download directory.
        """
        parts = suggested_filename.replace("\\", "/").split("/")
        if (
            not suggested_filename
            or "\x00" in suggested_filename
            or any(part in {"", ".", ".."} for part in parts)
        ):
            raise DownloadError(f"Unsafe download filename: {suggested_filename!r}")

        base = os.path.realpath(self.download_dir)
        candidate = os.path.realpath(os.path.join(base, *parts))
        if not _is_within_base(base, candidate):
            raise DownloadError(
                f"Download filename escapes the download directory: {suggested_filename!r}"
            )
        return Path(candidate)

    async def request(
        self, url: str, suggested_filename: str
    ) -> "asyncio.Future[DownloadResult]":
        task = asyncio.get_running_loop().create_task(
            self._run(url, suggested_filename)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info(f"Queued download: {suggested_filename}")
        return task

    async def _run(self, url: str, suggested_filename: str) -> DownloadResult:
        try:
            target = self.resolve_target(suggested_filename)
            await self.client.download_file(url, target)
        except DownloadError as e:
            logger.error(f"Download failed for {suggested_filename}: {e}")
            return DownloadResult(
                success=False,
                name=suggested_filename,
                url=url,
                error_message=str(e),
                http_status_code=e.status_code,
            )
        except Exception as e:
            logger.exception(f"Unexpected error downloading {url}: {e}")
            return DownloadResult(
                success=False,
                name=suggested_filename,
                url=url,
                error_message=f"Unexpected error: {e}",
            )
        return DownloadResult(
            success=True, name=suggested_filename, url=url, file_path=target
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def wait_all(self) -> List[DownloadResult]:
        """Wait for every accepted request to finish and return their results."""
        results: List[DownloadResult] = []
        while self._pending:
            results.extend(await asyncio.gather(*list(self._pending)))
        return results
