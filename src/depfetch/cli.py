# src/depfetch/cli.py

import argparse
import asyncio
import json
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from depfetch import __version__, log_utils
from depfetch import config as depfetch_config
from depfetch.download.async_client import AsyncRegistryClient, create_async_client
from depfetch.download.cache import MetadataCache
from depfetch.download.downloader import TarballDownloader
from depfetch.download.fetcher import MetadataFetcher
from depfetch.download.graph import GraphBuilder
from depfetch.download.interfaces import (
    CancellationToken,
    DownloadSummary,
    PersistentStore,
)
from depfetch.download.orchestrator import DownloadOrchestrator, log_progress
from depfetch.download.resolver import DependencyResolver
from depfetch.download.session import BrowseSession
from depfetch.download.storage import JsonFileStore, MemoryStore
from depfetch.exceptions import ConfigurationError, DepfetchError


class AppContext:
    """Wiring of the download subsystem for one CLI invocation."""

    def __init__(
        self,
        client: AsyncRegistryClient,
        config: Dict[str, Any],
        store: PersistentStore,
    ) -> None:
        self.config = config
        self.registry: str = config["REGISTRY_URL"]
        self.cache = MetadataCache(store)
        self.fetcher = MetadataFetcher(client, self.cache)
        self.resolver = DependencyResolver(self.fetcher)
        self.graph_builder = GraphBuilder(self.resolver)
        self.downloader = TarballDownloader(client, config["DOWNLOAD_DIR"])
        self.orchestrator = DownloadOrchestrator(
            self.fetcher, self.resolver, self.downloader
        )

    async def close(self) -> None:
        """Wait for accepted downloads and queued cache writes."""
        await self.downloader.wait_all()
        await self.cache.wait_for_pending()
        stats = self.fetcher.summary()
        log_utils.logger.debug(
            f"Metadata cache: {stats['cached_entries']} entries, "
            f"{stats['cache_hits']} hits, {stats['cache_misses']} misses"
        )


def build_store(config: Dict[str, Any], no_cache: bool = False) -> PersistentStore:
    if no_cache or not config.get("PERSIST_CACHE"):
        return MemoryStore()
    return JsonFileStore(config["CACHE_FILE"])


@contextmanager
def cancel_on_interrupt() -> Iterator[CancellationToken]:
    """
    Yield a CancellationToken that is cancelled on SIGINT.

    Must be entered while an event loop is running. Where signal handlers
    cannot be installed (e.g. Windows), Ctrl+C keeps its default behaviour.
    """
    token = CancellationToken()
    loop = asyncio.get_running_loop()

    def _on_interrupt() -> None:
        if not token.cancelled:
            log_utils.logger.info("Cancelling after the current download...")
        token.cancel()

    installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
        installed = True
    except (NotImplementedError, RuntimeError) as e:
        log_utils.logger.debug(f"SIGINT cancellation unavailable: {e}")

    try:
        yield token
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _report_summary(summary: DownloadSummary) -> int:
    if summary.was_cancelled:
        print(f"Cancelled by user. Downloaded {summary.completed} of {summary.total}.")
    else:
        print(f"Done. {summary.completed} / {summary.total}")
    if summary.skipped:
        print(f"Skipped: {', '.join(summary.skipped)}")
    return 0


async def cmd_show(ctx: AppContext, args: argparse.Namespace) -> int:
    metadata = await ctx.fetcher.fetch(ctx.registry, args.name)
    print(f"{metadata.name}@{metadata.version}")
    if metadata.description:
        print(metadata.description)
    print(f"Dependencies ({len(metadata.dependencies)}):")
    if not metadata.dependencies:
        print("  No dependencies")
    for dep_name, version_range in metadata.dependencies.items():
        print(f"  {dep_name}  {version_range}")
    print(f"Tarball: {metadata.tarball_url or 'not available'}")
    return 0


async def cmd_deps(ctx: AppContext, args: argparse.Namespace) -> int:
    metadata = await ctx.fetcher.fetch(ctx.registry, args.name)
    if not args.recursive:
        names: List[str] = list(metadata.dependencies)
    else:

        def _on_visit(name: str, queued: int) -> None:
            log_utils.logger.debug(f"Expanded {name} ({queued} queued)")

        names = await ctx.resolver.resolve_transitive(
            ctx.registry, args.name, on_visit=_on_visit
        )

    for name in names:
        print(name)
    log_utils.logger.info(f"{len(names)} dependencies of {args.name}")
    return 0


async def cmd_graph(ctx: AppContext, args: argparse.Namespace) -> int:
    await ctx.fetcher.fetch(ctx.registry, args.name)
    max_nodes = (
        args.max_nodes if args.max_nodes is not None else ctx.config["MAX_GRAPH_NODES"]
    )
    graph = await ctx.graph_builder.build_graph(ctx.registry, args.name, max_nodes)

    if args.format == "dot":
        text = graph.to_dot(args.name)
    else:
        text = json.dumps(graph.to_dict(), indent=2)

    if args.output:
        output = Path(args.output).expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n", encoding="utf-8")
        log_utils.logger.info(
            f"Graph of {args.name} ({len(graph.nodes)} nodes) written to {output}"
        )
    else:
        print(text)
    return 0


async def cmd_download(ctx: AppContext, args: argparse.Namespace) -> int:
    metadata = await ctx.fetcher.fetch(ctx.registry, args.name)

    if args.recursive:
        with cancel_on_interrupt() as token:
            summary = await ctx.orchestrator.download_recursive(
                ctx.registry, args.name, on_progress=log_progress, cancellation=token
            )
        return _report_summary(summary)

    if args.deps is not None:
        names = list(args.deps) or list(metadata.dependencies)
        unknown = [name for name in names if name not in metadata.dependencies]
        for name in unknown:
            log_utils.logger.warning(
                f"{name} is not a direct dependency of {args.name}; skipping"
            )
        names = [name for name in names if name not in unknown]
        if not names:
            print("No dependencies to download")
            return 0
        with cancel_on_interrupt() as token:
            summary = await ctx.orchestrator.download_all(
                ctx.registry, names, on_progress=log_progress, cancellation=token
            )
        return _report_summary(summary)

    task = await ctx.orchestrator.download_one(metadata, args.name)
    results = await ctx.downloader.wait_all()
    failed = [result for result in results if not result.success]
    if failed:
        log_utils.logger.error(f"Download of {task.filename} failed")
        return 1
    print(f"Saved {task.filename} to {ctx.downloader.download_dir}")
    return 0


async def cmd_browse(ctx: AppContext, args: argparse.Namespace) -> int:
    from depfetch.menu_registry import run_menu

    session = BrowseSession(ctx.resolver, ctx.registry)
    await run_menu(
        session,
        ctx.orchestrator,
        ctx.graph_builder,
        args.name,
        max_nodes=ctx.config["MAX_GRAPH_NODES"],
        cancellation_scope=cancel_on_interrupt,
    )
    return 0


async def cmd_cache(ctx: AppContext, args: argparse.Namespace) -> int:
    if args.cache_command == "clear":
        await ctx.cache.clear()
        return 0

    store = ctx.cache.store
    location = str(store.path) if isinstance(store, JsonFileStore) else "memory"
    print(f"Cache store: {location}")
    print(f"Cached packages: {len(ctx.cache)}")
    return 0


COMMANDS = {
    "show": cmd_show,
    "deps": cmd_deps,
    "graph": cmd_graph,
    "download": cmd_download,
    "browse": cmd_browse,
    "cache": cmd_cache,
}


async def run_command(
    args: argparse.Namespace,
    config: Dict[str, Any],
    store: Optional[PersistentStore] = None,
) -> int:
    """
    Run one registry command inside a single aiohttp session.

    The persisted cache is loaded first; accepted downloads and queued cache
    writes are awaited before returning.
    """
    handler = COMMANDS[args.command]
    if store is None:
        store = build_store(config, no_cache=getattr(args, "no_cache", False))

    async with create_async_client(timeout=config.get("REQUEST_TIMEOUT")) as client:
        ctx = AppContext(client, config, store)
        await ctx.cache.load()
        try:
            return await handler(ctx, args)
        finally:
            await ctx.close()


def run_config_command(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    if args.config_command == "init":
        exists, config_path = depfetch_config.config_exists()
        if exists and not args.force:
            log_utils.logger.error(
                f"Configuration already exists at {config_path}; use --force to overwrite"
            )
            return 1
        depfetch_config.save_config(depfetch_config.default_config())
        return 0

    exists, config_path = depfetch_config.config_exists()
    print(f"Configuration file: {config_path}{'' if exists else ' (not created)'}")
    print(yaml.safe_dump(config, default_flow_style=False, sort_keys=True).rstrip())
    return 0


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="depfetch",
        description="depfetch - browse package registries and download dependency tarballs",
    )
    parser.add_argument("--registry", metavar="URL", help="Registry base URL")
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not read or write the persistent metadata cache",
    )
    subparsers = parser.add_subparsers(dest="command")

    show_parser = subparsers.add_parser(
        "show", help="Show the latest metadata of a package"
    )
    show_parser.add_argument("name", help="Package name")

    deps_parser = subparsers.add_parser("deps", help="List dependencies of a package")
    deps_parser.add_argument("name", help="Package name")
    deps_parser.add_argument(
        "--recursive",
        "-r",
        action="store_true",
        help="List every transitive dependency instead of direct ones",
    )

    graph_parser = subparsers.add_parser(
        "graph", help="Export the dependency graph of a package"
    )
    graph_parser.add_argument("name", help="Package name")
    graph_parser.add_argument(
        "--max-nodes",
        type=_positive_int,
        metavar="N",
        help="Maximum number of nodes (default from configuration)",
    )
    graph_parser.add_argument(
        "--format", choices=["json", "dot"], default="json", help="Output format"
    )
    graph_parser.add_argument(
        "--output", "-o", metavar="FILE", help="Write to FILE instead of stdout"
    )

    download_parser = subparsers.add_parser(
        "download", help="Download package tarballs"
    )
    download_parser.add_argument("name", help="Package name")
    download_mode_group = download_parser.add_mutually_exclusive_group()
    download_mode_group.add_argument(
        "--recursive",
        "-r",
        action="store_true",
        help="Download every transitive dependency (the package itself excluded)",
    )
    download_mode_group.add_argument(
        "--deps",
        nargs="*",
        metavar="DEP",
        help="Download direct dependencies (all of them if none are named)",
    )
    download_parser.add_argument(
        "--dir", metavar="DIR", help="Download directory (default from configuration)"
    )

    browse_parser = subparsers.add_parser(
        "browse", help="Browse a package and its dependencies interactively"
    )
    browse_parser.add_argument("name", help="Package to start from")

    cache_parser = subparsers.add_parser(
        "cache",
        help="Manage the metadata cache",
        description="Inspect or clear cached package metadata.",
    )
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", required=True)
    cache_subparsers.add_parser("clear", help="Remove every cached entry")
    cache_subparsers.add_parser("info", help="Show cache location and size")

    config_parser = subparsers.add_parser(
        "config", help="Show the effective configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    init_parser = config_subparsers.add_parser(
        "init", help="Write a configuration file with default values"
    )
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite an existing configuration"
    )

    subparsers.add_parser("version", help="Display depfetch version")
    return parser


def _apply_overrides(args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
    if args.registry:
        config["REGISTRY_URL"] = args.registry
    if getattr(args, "dir", None):
        config["DOWNLOAD_DIR"] = args.dir
    return depfetch_config.validate_config(config)


def _configure_logging(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    level_name = args.log_level or config.get("LOG_LEVEL")
    if level_name:
        log_utils.set_log_level(level_name)
    if config.get("LOG_DIR"):
        log_utils.add_file_logging(
            Path(config["LOG_DIR"]).expanduser(), level_name or "INFO"
        )


def main(argv: Optional[List[str]] = None) -> None:
    # Logging is automatically initialized by importing log_utils

    """
    Entry point for the depfetch command-line interface.

    Loads configuration, applies command-line overrides and dispatches the
    subcommand. Registry commands run in a single asyncio event loop. Exits
    with status 1 when a command fails.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "version":
        log_utils.logger.info(f"depfetch v{__version__}")
        return

    try:
        config = _apply_overrides(args, depfetch_config.load_config())
    except ConfigurationError as error:
        log_utils.logger.error(f"Failed to load configuration: {error}")
        sys.exit(1)

    _configure_logging(args, config)

    try:
        if args.command == "config":
            exit_code = run_config_command(args, config)
        else:
            exit_code = asyncio.run(run_command(args, config))
    except DepfetchError as error:
        log_utils.logger.error(str(error))
        exit_code = 1
    except KeyboardInterrupt:
        log_utils.logger.info("Interrupted")
        exit_code = 130

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
