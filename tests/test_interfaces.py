import pytest

from depfetch.download.interfaces import (
    CancellationToken,
    DownloadProgress,
    DownloadTask,
    Expansion,
    Graph,
    GraphEdge,
    GraphNode,
    PackageMetadata,
)
from tests.async_test_utils import make_package, tarball_url


class TestPackageMetadata:
    """Conversion between registry documents and metadata records."""

    def test_from_registry_document(self):
        doc = make_package("left", ["shared"], description="Left side")

        metadata = PackageMetadata.from_dict(doc)

        assert metadata.name == "left"
        assert metadata.version == "1.0.0"
        assert metadata.description == "Left side"
        assert metadata.dependencies == {"shared": "^1.0.0"}
        assert metadata.tarball_url == tarball_url("left")

    def test_optional_fields_default(self):
        metadata = PackageMetadata.from_dict({"name": "bare", "version": "0.1.0"})

        assert metadata.description is None
        assert metadata.dependencies == {}
        assert metadata.tarball_url is None

    def test_null_dependencies_treated_as_empty(self):
        metadata = PackageMetadata.from_dict(
            {"name": "bare", "version": "0.1.0", "dependencies": None}
        )
        assert metadata.dependencies == {}

    def test_empty_tarball_is_absent(self):
        metadata = PackageMetadata.from_dict(
            {"name": "bare", "version": "0.1.0", "dist": {"tarball": ""}}
        )
        assert metadata.tarball_url is None

    @pytest.mark.parametrize(
        "doc",
        [
            {"version": "1.0.0"},
            {"name": "", "version": "1.0.0"},
            {"name": "x"},
            {"name": "x", "version": 1},
            {"name": "x", "version": "1.0.0", "dependencies": ["a", "b"]},
        ],
    )
    def test_invalid_documents(self, doc):
        with pytest.raises(ValueError):
            PackageMetadata.from_dict(doc)

    def test_to_dict_round_trips(self):
        doc = make_package("@scope/pkg", ["left"], description="Scoped")
        metadata = PackageMetadata.from_dict(doc)

        assert PackageMetadata.from_dict(metadata.to_dict()) == metadata
        assert metadata.to_dict()["dist"] == {"tarball": tarball_url("@scope/pkg")}

    def test_to_dict_omits_absent_fields(self):
        data = PackageMetadata(name="bare", version="1.0.0").to_dict()
        assert data == {"name": "bare", "version": "1.0.0", "dependencies": {}}


class TestGraphSerialization:
    @pytest.fixture
    def graph(self):
        return Graph(
            nodes=[GraphNode("app"), GraphNode("left")],
            edges=[GraphEdge("app", "left"), GraphEdge("left", "app")],
        )

    def test_to_dict(self, graph):
        assert graph.to_dict() == {
            "nodes": [{"id": "app"}, {"id": "left"}],
            "links": [
                {"source": "app", "target": "left"},
                {"source": "left", "target": "app"},
            ],
        }

    def test_to_dot(self, graph):
        assert graph.to_dot("app") == (
            'digraph "app" {\n'
            '  "app";\n'
            '  "left";\n'
            '  "app" -> "left";\n'
            '  "left" -> "app";\n'
            "}"
        )

    def test_to_dot_escapes_quotes(self):
        graph = Graph(nodes=[GraphNode('we"ird')])
        assert '"we\\"ird";' in graph.to_dot()

    def test_empty_graph(self):
        assert Graph().to_dict() == {"nodes": [], "links": []}


class TestDownloadValues:
    def test_task_filename(self):
        assert DownloadTask("lodash", "u").filename == "lodash.tgz"
        assert DownloadTask("@babel/core", "u").filename == "@babel/core.tgz"

    def test_progress_remaining_and_percent(self):
        progress = DownloadProgress(1, 3)
        assert progress.remaining == 2
        assert progress.percent == 33

    def test_empty_progress_is_complete(self):
        assert DownloadProgress(0, 0).percent == 100
        assert DownloadProgress(0, 0).remaining == 0


class TestCancellationToken:
    def test_starts_uncancelled(self):
        assert not CancellationToken().cancelled

    def test_cancel_is_sticky(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled
        assert repr(token) == "CancellationToken(cancelled=True)"


def test_expansion_ok():
    assert Expansion("a").ok
    assert not Expansion("a", error="Not found").ok
