import pytest

from depfetch.download.interfaces import Expansion
from tests.async_test_utils import REGISTRY, make_package


class TestExpand:
    """Single-node expansion."""

    @pytest.mark.asyncio
    async def test_expand_returns_direct_dependencies(self, stack):
        expansion = await stack.resolver.expand(REGISTRY, "right")

        assert expansion == Expansion(
            name="right", dependencies={"shared": "^1.0.0", "cyc-a": "^1.0.0"}
        )
        assert expansion.ok
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_expand_failure_is_a_value(self, stack):
        expansion = await stack.resolver.expand(REGISTRY, "ghost")

        assert not expansion.ok
        assert expansion.dependencies == {}
        assert expansion.error == "Not found"


class TestResolveTransitive:
    """Breadth-first transitive resolution."""

    @pytest.mark.asyncio
    async def test_bfs_order_and_deduplication(self, stack):
        names = await stack.resolver.resolve_transitive(REGISTRY, "app")

        assert names == ["left", "right", "shared", "cyc-a", "cyc-b"]
        assert len(names) == len(set(names))
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_each_package_fetched_once(self, stack):
        await stack.resolver.resolve_transitive(REGISTRY, "app")

        requested = stack.client.requested_names()
        assert sorted(requested) == sorted(
            ["app", "left", "right", "shared", "cyc-a", "cyc-b"]
        )
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_cycle_through_root_excludes_root(self, stack):
        stack.client.packages["loop-root"] = make_package("loop-root", ["loop-child"])
        stack.client.packages["loop-child"] = make_package("loop-child", ["loop-root"])

        names = await stack.resolver.resolve_transitive(REGISTRY, "loop-root")

        assert names == ["loop-child"]
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_self_dependency(self, stack):
        stack.client.packages["narcissus"] = make_package("narcissus", ["narcissus"])
        assert await stack.resolver.resolve_transitive(REGISTRY, "narcissus") == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_leaf_package_has_empty_set(self, stack):
        assert await stack.resolver.resolve_transitive(REGISTRY, "shared") == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_broken_dependency_does_not_abort(self, stack):
        stack.client.packages["partial"] = make_package("partial", ["ghost", "left"])

        names = await stack.resolver.resolve_transitive(REGISTRY, "partial")

        assert names == ["ghost", "left", "shared"]
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_network_failure_on_node_does_not_abort(self, stack):
        stack.client.network_failures.add("left")

        names = await stack.resolver.resolve_transitive(REGISTRY, "app")

        assert names == ["left", "right", "shared", "cyc-a", "cyc-b"]
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_unknown_root_gives_empty_set(self, stack):
        assert await stack.resolver.resolve_transitive(REGISTRY, "ghost") == []

    @pytest.mark.asyncio
    async def test_warm_cache_makes_no_requests(self, stack):
        await stack.resolver.resolve_transitive(REGISTRY, "app")
        stack.client.requests.clear()

        again = await stack.resolver.resolve_transitive(REGISTRY, "app")

        assert again == ["left", "right", "shared", "cyc-a", "cyc-b"]
        assert stack.client.requests == []
        await stack.cache.wait_for_pending()

    @pytest.mark.asyncio
    async def test_on_visit_reports_queue_length(self, stack):
        visits = []

        await stack.resolver.resolve_transitive(
            REGISTRY, "app", on_visit=lambda name, queued: visits.append((name, queued))
        )

        assert visits == [
            ("app", 2),
            ("left", 2),
            ("right", 2),
            ("shared", 1),
            ("cyc-a", 1),
            ("cyc-b", 0),
        ]
        await stack.cache.wait_for_pending()
