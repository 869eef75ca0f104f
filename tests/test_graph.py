import pytest

from depfetch.download.cache import make_cache_key
from depfetch.download.interfaces import PackageMetadata
from tests.async_test_utils import REGISTRY, make_package


def _edges(graph):
    return [(edge.source, edge.target) for edge in graph.edges]


def _assert_well_formed(graph, max_nodes):
    ids = graph.node_ids()
    assert len(ids) <= max_nodes
    assert len(ids) == len(set(ids))
    for source, target in _edges(graph):
        assert source in ids
        assert target in ids


class TestBuildGraph:
    """Bounded breadth-first graph construction."""

    @pytest.mark.asyncio
    async def test_full_graph(self, stack):
        graph = await stack.graph.build_graph(REGISTRY, "app")

        assert graph.node_ids() == ["app", "left", "right", "shared", "cyc-a", "cyc-b"]
        assert _edges(graph) == [
            ("app", "left"),
            ("app", "right"),
            ("left", "shared"),
            ("right", "shared"),
            ("right", "cyc-a"),
            ("cyc-a", "cyc-b"),
            ("cyc-b", "cyc-a"),
        ]
        _assert_well_formed(graph, 200)
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_single_node_bound(self, stack):
        graph = await stack.graph.build_graph(REGISTRY, "app", max_nodes=1)

        assert graph.node_ids() == ["app"]
        assert graph.edges == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_bound_hit_while_scanning_neighbours(self, stack):
        graph = await stack.graph.build_graph(REGISTRY, "app", max_nodes=3)

        assert graph.node_ids() == ["app", "left", "right"]
        assert _edges(graph) == [("app", "left"), ("app", "right")]
        _assert_well_formed(graph, 3)
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_bound_hit_on_second_level(self, stack):
        graph = await stack.graph.build_graph(REGISTRY, "app", max_nodes=4)

        assert graph.node_ids() == ["app", "left", "right", "shared"]
        assert _edges(graph) == [
            ("app", "left"),
            ("app", "right"),
            ("left", "shared"),
        ]
        _assert_well_formed(graph, 4)
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_edges_to_admitted_nodes_recorded_after_bound(self, stack):
        stack.client.packages["r"] = make_package("r", ["a", "b", "c", "r"])
        for name in ("a", "b", "c"):
            stack.client.packages[name] = make_package(name)

        graph = await stack.graph.build_graph(REGISTRY, "r", max_nodes=2)

        assert graph.node_ids() == ["r", "a"]
        assert _edges(graph) == [("r", "a"), ("r", "r")]
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_five_dependencies_with_bound_of_two(self, stack):
        deps = [f"dep-{i}" for i in range(5)]
        stack.client.packages["five"] = make_package("five", deps)
        for dep in deps:
            stack.client.packages[dep] = make_package(dep)

        graph = await stack.graph.build_graph(REGISTRY, "five", max_nodes=2)

        assert graph.node_ids() == ["five", "dep-0"]
        assert _edges(graph) == [("five", "dep-0")]
        _assert_well_formed(graph, 2)
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_many_dependencies_respect_bound(self, stack):
        deps = [f"dep-{i}" for i in range(10)]
        stack.client.packages["wide"] = make_package("wide", deps)
        for dep in deps:
            stack.client.packages[dep] = make_package(dep)

        graph = await stack.graph.build_graph(REGISTRY, "wide", max_nodes=5)

        assert graph.node_ids() == ["wide", "dep-0", "dep-1", "dep-2", "dep-3"]
        _assert_well_formed(graph, 5)
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_failed_node_has_no_outgoing_edges(self, stack):
        stack.client.packages["partial"] = make_package("partial", ["ghost", "shared"])

        graph = await stack.graph.build_graph(REGISTRY, "partial")

        assert graph.node_ids() == ["partial", "ghost", "shared"]
        assert _edges(graph) == [("partial", "ghost"), ("partial", "shared")]
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_missing_root_gives_single_node(self, stack):
        graph = await stack.graph.build_graph(REGISTRY, "ghost")
        assert graph.node_ids() == ["ghost"]
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_invalid_bound(self, stack):
        with pytest.raises(ValueError):
            await stack.graph.build_graph(REGISTRY, "app", max_nodes=0)

    @pytest.mark.asyncio
    async def test_cached_nodes_skip_fetcher(self, stack, mocker):
        stack.cache.put(
            make_cache_key(REGISTRY, "solo"),
            PackageMetadata(name="solo", version="1.0.0", dependencies={}),
        )
        fetch = mocker.spy(stack.fetcher, "fetch")

        graph = await stack.graph.build_graph(REGISTRY, "solo")

        assert graph.node_ids() == ["solo"]
        fetch.assert_not_called()
        assert stack.client.requests == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_graph_after_resolve_makes_no_requests(self, stack):
        await stack.resolver.resolve_transitive(REGISTRY, "app")
        stack.client.requests.clear()

        await stack.graph.build_graph(REGISTRY, "app")

        assert stack.client.requests == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_truncation_is_logged(self, stack, mocker):
        mock_info = mocker.patch("depfetch.download.graph.logger.info")
        await stack.graph.build_graph(REGISTRY, "app", max_nodes=2)
        mock_info.assert_called_once_with("Graph for app truncated at 2 nodes")
        await stack.cache.wait_for_pending()
