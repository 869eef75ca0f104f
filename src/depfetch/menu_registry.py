from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, List, Optional

from pick import pick

from depfetch.constants import (
    DEFAULT_MAX_GRAPH_NODES,
    MENU_BACK,
    MENU_CLEAR_CACHE,
    MENU_DOWNLOAD_PACKAGE,
    MENU_DOWNLOAD_RECURSIVE,
    MENU_DOWNLOAD_SELECTED,
    MENU_EXPAND,
    MENU_QUIT,
    MENU_SHOW_GRAPH,
)
from depfetch.download.graph import GraphBuilder
from depfetch.download.interfaces import CancellationToken, Expansion, Graph
from depfetch.download.orchestrator import (
    DownloadOrchestrator,
    ProgressCallback,
    log_progress,
)
from depfetch.download.session import BrowseSession, PackageView
from depfetch.exceptions import (
    DownloadInProgressError,
    MetadataError,
    MissingArtifactError,
)
from depfetch.log_utils import logger

# Action menu entry -> action type returned by select_action
ACTION_TYPES = {
    MENU_DOWNLOAD_PACKAGE: "download",
    MENU_DOWNLOAD_SELECTED: "download_selected",
    MENU_DOWNLOAD_RECURSIVE: "download_recursive",
    MENU_EXPAND: "expand",
    MENU_SHOW_GRAPH: "graph",
    MENU_CLEAR_CACHE: "clear_cache",
    MENU_BACK: "back",
    MENU_QUIT: "quit",
}

CancellationScope = Callable[[], ContextManager[CancellationToken]]


def describe_package(view: PackageView) -> str:
    """Return the header shown above the package menu."""
    metadata = view.metadata
    lines = [f"{view.name}  version: {metadata.version}"]
    if metadata.description:
        lines.append(metadata.description)
    lines.append(f"Dependencies ({len(metadata.dependencies)})")
    return "\n".join(lines)


def _dependency_labels(dependencies: Dict[str, str]) -> List[str]:
    return [f"{name}  {version_range}" for name, version_range in dependencies.items()]


def select_action(view: PackageView, can_go_back: bool) -> Dict[str, Any]:
    """
    Show the package menu: its dependencies followed by the available actions.

    Returns:
        dict: `{"type": "open", "name": <dependency>}` when a dependency is picked,
        otherwise `{"type": <action>}` with an action from ACTION_TYPES.
    """
    dependencies = list(view.metadata.dependencies)
    actions = [
        MENU_DOWNLOAD_PACKAGE,
        MENU_DOWNLOAD_SELECTED,
        MENU_DOWNLOAD_RECURSIVE,
        MENU_EXPAND,
        MENU_SHOW_GRAPH,
        MENU_CLEAR_CACHE,
    ]
    if can_go_back:
        actions.append(MENU_BACK)
    actions.append(MENU_QUIT)

    title = (
        f"{describe_package(view)}\n\n"
        "Select a dependency to open it, or an action (press ENTER to choose):"
    )
    option, index = pick(
        _dependency_labels(view.metadata.dependencies) + actions, title, indicator="*"
    )

    if isinstance(index, int) and index < len(dependencies):
        return {"type": "open", "name": dependencies[index]}
    return {"type": ACTION_TYPES.get(option, "quit")}


def select_dependency(dependencies: Dict[str, str], title: str) -> Optional[str]:
    """Pick a single dependency name; None when the user backs out or there is nothing to pick."""
    if not dependencies:
        print("No dependencies")
        return None

    names = list(dependencies)
    option, index = pick(
        _dependency_labels(dependencies) + [MENU_BACK], title, indicator="*"
    )
    if option == MENU_BACK or not isinstance(index, int) or index >= len(names):
        return None
    return names[index]


def select_dependencies(dependencies: Dict[str, str]) -> Optional[List[str]]:
    """
    Multi-select dependencies to download.

    Returns:
        list[str] | None: Chosen names, or None if nothing was chosen or [Quit] was selected.
    """
    if not dependencies:
        print("No dependencies")
        return None

    names = list(dependencies)
    title = """Select the dependencies you want to download (press SPACE to select, ENTER to confirm):
Select "[Quit]" to return without downloading."""

    selected_options = pick(
        _dependency_labels(dependencies) + [MENU_QUIT],
        title,
        multiselect=True,
        min_selection_count=0,
        indicator="*",
    )

    if not selected_options:
        print("No dependencies selected for download.")
        return None

    selected: List[str] = []
    for option in selected_options:
        # pick returns (option, index) tuples in multiselect mode
        index = option[1] if isinstance(option, (tuple, list)) else None
        label = option[0] if isinstance(option, (tuple, list)) else str(option)
        if label == MENU_QUIT:
            return None
        if isinstance(index, int) and index < len(names):
            selected.append(names[index])
    return selected or None


def format_expansion(expansion: Expansion) -> str:
    if not expansion.ok:
        return f"{expansion.name}: {expansion.error}"
    if not expansion.dependencies:
        return f"{expansion.name}: No dependencies"
    lines = [f"{expansion.name}:"]
    lines.extend(f"  {label}" for label in _dependency_labels(expansion.dependencies))
    return "\n".join(lines)


def format_graph(graph: Graph, root_name: str) -> str:
    """
    Render a graph as an indented tree rooted at `root_name`.

    Nodes reached a second time are marked with `(*)` and not descended into.
    """
    children: Dict[str, List[str]] = {}
    for edge in graph.edges:
        children.setdefault(edge.source, []).append(edge.target)

    lines = [f"{root_name} ({len(graph.nodes)} nodes, {len(graph.edges)} edges)"]
    visited = {root_name}
    stack = [(child, 1) for child in reversed(children.get(root_name, []))]
    while stack:
        name, depth = stack.pop()
        if name in visited:
            lines.append(f"{'  ' * depth}- {name} (*)")
            continue
        visited.add(name)
        lines.append(f"{'  ' * depth}- {name}")
        stack.extend((child, depth + 1) for child in reversed(children.get(name, [])))
    return "\n".join(lines)


async def _handle_action(
    choice: Dict[str, Any],
    view: PackageView,
    session: BrowseSession,
    orchestrator: DownloadOrchestrator,
    graph_builder: GraphBuilder,
    max_nodes: int,
    on_progress: ProgressCallback,
    cancellation_scope: CancellationScope,
) -> PackageView:
    kind = choice["type"]

    if kind == "open":
        return await session.open(choice["name"])

    if kind == "back":
        return (await session.back()) or view

    if kind == "expand":
        name = select_dependency(
            view.metadata.dependencies, "Select a dependency to expand:"
        )
        if name is None:
            return view
        expansion = await session.expand(name)
        print(format_expansion(expansion))
        if expansion.ok and expansion.dependencies:
            child = select_dependency(
                expansion.dependencies, f"Dependencies of {name} (ENTER opens one):"
            )
            if child is not None:
                return await session.open(child)
        return view

    if kind == "download":
        task = await orchestrator.download_one(view.metadata, view.name)
        print(f"Started download of {task.filename}")
        return view

    if kind == "download_selected":
        names = select_dependencies(view.metadata.dependencies)
        if names:
            tasks = await orchestrator.download_selected(session.registry, names)
            print(f"Started {len(tasks)} download(s)")
        return view

    if kind == "download_recursive":
        with cancellation_scope() as token:
            summary = await orchestrator.download_recursive(
                session.registry, view.name, on_progress=on_progress, cancellation=token
            )
        if summary.was_cancelled:
            print(
                f"Cancelled by user. Downloaded {summary.completed} of {summary.total}."
            )
        else:
            print(f"Done. {summary.completed} / {summary.total}")
        return view

    if kind == "graph":
        graph = await graph_builder.build_graph(session.registry, view.name, max_nodes)
        print(format_graph(graph, view.name))
        return view

    if kind == "clear_cache":
        await session.resolver.fetcher.cache.clear()
        print("Cache cleared")
        return view

    logger.debug(f"Unknown menu action {kind!r}")
    return view


async def run_menu(
    session: BrowseSession,
    orchestrator: DownloadOrchestrator,
    graph_builder: GraphBuilder,
    root_name: str,
    max_nodes: int = DEFAULT_MAX_GRAPH_NODES,
    on_progress: ProgressCallback = log_progress,
    cancellation_scope: Optional[CancellationScope] = None,
) -> None:
    """
    Browse packages interactively, starting at `root_name`, until the user quits.

    Lookup and download failures inside the menu are logged and the menu is
    shown again for the same package.

    Parameters:
        session (BrowseSession): Navigation state.
        orchestrator (DownloadOrchestrator): Used for all downloads.
        graph_builder (GraphBuilder): Used for the dependency graph view.
        root_name (str): First package to open.
        max_nodes (int): Graph size bound.
        on_progress (ProgressCallback): Progress reporter for recursive downloads.
        cancellation_scope (Optional[CancellationScope]): Context manager factory yielding the
            CancellationToken for a recursive download (the CLI binds SIGINT to it).

    Raises:
        MetadataError: If `root_name` itself cannot be fetched.
    """
    scope: CancellationScope = cancellation_scope or (
        lambda: nullcontext(CancellationToken())
    )
    view = await session.search(root_name)

    while True:
        choice = select_action(view, session.can_go_back)
        if choice["type"] == "quit":
            print("Exiting package browser.")
            return

        try:
            view = await _handle_action(
                choice,
                view,
                session,
                orchestrator,
                graph_builder,
                max_nodes,
                on_progress,
                scope,
            )
        except MetadataError as e:
            logger.error(f"Lookup failed: {e}")
        except MissingArtifactError as e:
            logger.error(str(e))
        except DownloadInProgressError as e:
            logger.warning(str(e))
