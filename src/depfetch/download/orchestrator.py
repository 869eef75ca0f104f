"""
Download Orchestrator

Coordinates sequential tarball downloads through the host download
collaborator: single packages, selected dependencies, and the full
transitive closure of a package with progress reporting and cooperative
cancellation.
"""

import asyncio
from typing import Any, Callable, List, Optional, Sequence, Tuple

from depfetch.exceptions import (
    DownloadInProgressError,
    MetadataError,
    MissingArtifactError,
)
from depfetch.log_utils import logger

from .fetcher import MetadataFetcher
from .interfaces import (
    CancellationToken,
    DownloadCollaborator,
    DownloadProgress,
    DownloadResult,
    DownloadSummary,
    DownloadTask,
    OrchestratorState,
    PackageMetadata,
)
from .resolver import DependencyResolver

ProgressCallback = Callable[[DownloadProgress], Any]


def log_progress(progress: DownloadProgress) -> None:
    """Default progress reporter: `done / total (percent), remaining`."""
    if progress.cancelled:
        return
    logger.info(
        f"Progress: {progress.completed} / {progress.total} "
        f"({progress.percent}%), {progress.remaining} remaining"
    )


class DownloadOrchestrator:
    """
    Drive batch downloads one package at a time.

    Only one batch may run at a time; starting a second one while the first
    is active raises DownloadInProgressError. Single-package hand-offs
    (download_one, download_selected) are not batches and are always allowed.
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        resolver: DependencyResolver,
        downloader: DownloadCollaborator,
    ) -> None:
        self.fetcher = fetcher
        self.resolver = resolver
        self.downloader = downloader
        self.state = OrchestratorState.IDLE
        self.last_state: Optional[OrchestratorState] = None
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    def _acquire(self) -> None:
        if self._busy:
            raise DownloadInProgressError()
        self._busy = True

    def _release(self) -> None:
        self._busy = False
        self.state = OrchestratorState.IDLE

    async def _hand_off(
        self, metadata: PackageMetadata, name: str
    ) -> Tuple[DownloadTask, "asyncio.Future[DownloadResult]"]:
        if not metadata.tarball_url:
            raise MissingArtifactError(name)
        task = DownloadTask(name=name, tarball_url=metadata.tarball_url)
        future = await self.downloader.request(task.tarball_url, task.filename)
        return task, future

    async def download_one(self, metadata: PackageMetadata, name: str) -> DownloadTask:
        """
        Hand the tarball of `metadata` to the download collaborator as `<name>.tgz`.

        Returns once the request is accepted; completion is not awaited.

        Raises:
            MissingArtifactError: If the metadata carries no tarball URL.
        """
        task, _ = await self._hand_off(metadata, name)
        logger.info(f"Started download of {task.filename}")
        return task

    async def download_selected(
        self, registry: str, names: Sequence[str]
    ) -> List[DownloadTask]:
        """
        Start downloads for each of `names` without waiting for them.

        Lookup failures and packages without a tarball are logged and skipped.
        """
        started: List[DownloadTask] = []
        for name in names:
            try:
                metadata = await self.fetcher.fetch(registry, name)
                started.append(await self.download_one(metadata, name))
            except (MetadataError, MissingArtifactError) as e:
                logger.warning(f"Skipping {name}: {e}")
        return started

    async def _notify(
        self, on_progress: Optional[ProgressCallback], progress: DownloadProgress
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(progress)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.debug(f"Progress callback error: {e}")

    async def _download_one_and_wait(
        self, registry: str, name: str
    ) -> Optional[DownloadResult]:
        try:
            metadata = await self.fetcher.fetch(registry, name)
            task, future = await self._hand_off(metadata, name)
        except (MetadataError, MissingArtifactError) as e:
            logger.warning(f"Skipping {name}: {e}")
            return None

        result = await future
        if not result.success:
            logger.warning(
                f"Skipping {task.name}: {result.error_message or 'download failed'}"
            )
            return None
        return result

    async def _run_downloads(
        self,
        registry: str,
        names: Sequence[str],
        on_progress: Optional[ProgressCallback],
        cancellation: Optional[CancellationToken],
    ) -> DownloadSummary:
        self.state = OrchestratorState.DOWNLOADING
        summary = DownloadSummary(completed=0, total=len(names))

        for name in names:
            if cancellation is not None and cancellation.cancelled:
                summary.was_cancelled = True
                break

            if await self._download_one_and_wait(registry, name) is None:
                summary.skipped.append(name)
            else:
                summary.downloaded.append(name)
            summary.completed += 1
            await self._notify(
                on_progress, DownloadProgress(summary.completed, summary.total)
            )

        if summary.was_cancelled:
            self.state = OrchestratorState.CANCELLED
            logger.info(
                f"Cancelled by user. Downloaded {summary.completed} of {summary.total}."
            )
            await self._notify(
                on_progress,
                DownloadProgress(summary.completed, summary.total, cancelled=True),
            )
        else:
            self.state = OrchestratorState.COMPLETED
            logger.info(
                f"Done. Downloaded {len(summary.downloaded)} of {summary.total}"
                + (f" ({len(summary.skipped)} skipped)" if summary.skipped else "")
            )
        self.last_state = self.state
        return summary

    async def download_all(
        self,
        registry: str,
        names: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> DownloadSummary:
        """
        Download the tarball of every name in order, one at a time.

        The cancellation token is checked before each name; the download in
        progress when it is cancelled always completes. A cancel that arrives
        while the last name downloads is not reported: `was_cancelled` is only
        set when names were left unprocessed. Names whose metadata
        cannot be fetched, that have no tarball, or whose download fails are
        logged and counted as skipped.

        Parameters:
            registry (str): Registry base URL.
            names (Sequence[str]): Package names to download.
            on_progress (Optional[ProgressCallback]): Called with a DownloadProgress after
                each processed name, and once more with `cancelled=True` if the run is
                cancelled. May be a coroutine function; errors are logged and ignored.
            cancellation (Optional[CancellationToken]): Cooperative stop signal.

        Returns:
            DownloadSummary: Counts and per-name outcome of the run.

        Raises:
            DownloadInProgressError: If another batch is already running.
        """
        self._acquire()
        try:
            return await self._run_downloads(registry, names, on_progress, cancellation)
        finally:
            self._release()

    async def download_recursive(
        self,
        registry: str,
        root_name: str,
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> DownloadSummary:
        """
        Resolve every transitive dependency of `root_name` and download them all.

        The root package itself is not part of the batch.

        Raises:
            DownloadInProgressError: If another batch is already running.
        """
        self._acquire()
        try:
            self.state = OrchestratorState.RESOLVING
            logger.info(f"Resolving dependencies of {root_name}...")
            names = await self.resolver.resolve_transitive(registry, root_name)
            logger.info(f"Found {len(names)} dependencies of {root_name}")
            return await self._run_downloads(registry, names, on_progress, cancellation)
        finally:
            self._release()
