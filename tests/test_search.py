"""Tests for fusion, ranking and the multi-variant searcher."""

import pytest

from conftest import SAMPLE_DOCS, HashingEmbedder, ScriptedGenerator
from qmd.embedding import EmbeddingPipeline
from qmd.errors import ProviderError, SearchError
from qmd.expander import QueryExpander
from qmd.indexer import Indexer
from qmd.models import ChunkHit, DocumentRecord
from qmd.search import DEFAULT_CANDIDATE_LIMIT, Searcher, fuse, rank, rerank


def doc(path: str, digest: str, collection: str = "notes") -> DocumentRecord:
    return DocumentRecord(collection, path, path, digest, "t", "t")


class TestFuse:
    def test_best_chunk_across_variants_wins(self):
        docs = {"h1": [doc("d.md", "h1")], "h2": [doc("e.md", "h2")]}
        variant_1 = [ChunkHit("h1", 0, 0.9)]
        variant_2 = [ChunkHit("h2", 0, 0.5), ChunkHit("h1", 3, 0.4)]

        fused = fuse([variant_1, variant_2], docs)

        assert [(s.document.path, s.score) for s in fused] == [("d.md", 0.9), ("e.md", 0.5)]
        assert fused[0].best_chunk == ChunkHit("h1", 0, 0.9)

    def test_scores_are_not_summed(self):
        docs = {"long": [doc("long.md", "long")], "short": [doc("short.md", "short")]}
        hits = [ChunkHit("long", seq, 0.5) for seq in range(10)] + [ChunkHit("short", 0, 0.6)]

        fused = fuse([hits], docs)

        assert [s.document.path for s in fused] == ["short.md", "long.md"]
        assert fused[1].score == 0.5

    def test_shared_content_surfaces_every_document(self):
        docs = {"h": [doc("a.md", "h"), doc("copy.md", "h", collection="other")]}

        fused = fuse([[ChunkHit("h", 0, 0.7)]], docs)

        assert sorted(s.document.path for s in fused) == ["a.md", "copy.md"]
        assert all(s.score == 0.7 for s in fused)

    def test_ties_break_by_path_length_then_hash(self):
        docs = {
            "b": [doc("bb.md", "b")],
            "a": [doc("aaaa.md", "a")],
            "c": [doc("cc.md", "c")],
        }
        hits = [ChunkHit("a", 0, 0.5), ChunkHit("b", 0, 0.5), ChunkHit("c", 0, 0.5)]

        fused = fuse([hits], docs)

        assert [s.document.path for s in fused] == ["bb.md", "cc.md", "aaaa.md"]

    def test_hits_without_documents_are_dropped(self):
        assert fuse([[ChunkHit("orphan", 0, 0.99)]], {}) == []

    def test_per_variant_limit(self):
        docs = {"a": [doc("a.md", "a")], "b": [doc("b.md", "b")]}
        fused = fuse([[ChunkHit("a", 0, 0.9), ChunkHit("b", 0, 0.8)]], docs, per_variant_limit=1)
        assert [s.document.path for s in fused] == ["a.md"]


class TestRank:
    @pytest.fixture
    def fused(self):
        docs = {h: [doc(f"{h}.md", h)] for h in ("a", "b", "c")}
        return fuse([[ChunkHit("a", 0, 0.9), ChunkHit("b", 0, 0.6), ChunkHit("c", 0, 0.3)]], docs)

    def test_threshold_applies_after_fusion(self, fused):
        assert rank(fused, min_score=0.95) == []
        assert [s.document.path for s in rank(fused, min_score=0.5)] == ["a.md", "b.md"]

    def test_limit(self, fused):
        assert len(rank(fused, limit=1)) == 1

    def test_all_matches_disables_limit(self, fused):
        assert len(rank(fused, limit=1, all_matches=True)) == 3

    def test_rerank_keeps_order(self, fused):
        assert rerank("query", fused) == fused


@pytest.fixture
def indexed(store, embedder):
    indexer = Indexer(store)
    for path, text in SAMPLE_DOCS.items():
        indexer.index_document("docs", path, text)
    report = EmbeddingPipeline(store, embedder).embed_pending()
    assert report.embedded == 3
    return store


class TestSearcher:
    def test_authentication_query(self, indexed, embedder):
        outcome = Searcher(indexed, embedder).vsearch("how to configure authentication")

        assert outcome.results[0].path == "auth.md"
        assert outcome.results[0].score > outcome.results[1].score

    def test_database_query(self, indexed, embedder):
        outcome = Searcher(indexed, embedder).vsearch("PostgreSQL connection string")

        assert outcome.results[0].path == "database.md"

    def test_result_record(self, indexed, embedder):
        result = Searcher(indexed, embedder).vsearch("PostgreSQL connection string").results[0]

        assert result.collection == "docs"
        assert result.title == "Database Configuration"
        assert result.docid == result.content_hash[:6]
        assert result.snippet.startswith("# Database Configuration")
        assert set(result.to_dict()) == {"docid", "score", "collection", "path", "title", "snippet"}

    def test_threshold_and_limit(self, indexed, embedder):
        searcher = Searcher(indexed, embedder)

        assert searcher.vsearch("set", all_matches=True).results
        assert len(searcher.vsearch("set", all_matches=True).results) == 3
        assert len(searcher.vsearch("set", limit=1).results) == 1
        assert searcher.vsearch("how to configure authentication", min_score=0.95).results == []

    def test_collection_filter(self, indexed, embedder):
        Indexer(indexed).index_document("other", "copy.md", SAMPLE_DOCS["auth.md"])
        searcher = Searcher(indexed, embedder)

        both = searcher.vsearch("configure authentication").results
        only_other = searcher.vsearch("configure authentication", collection="other").results

        assert {r.collection for r in both[:2]} == {"docs", "other"}
        assert [r.path for r in only_other] == ["copy.md"]

    def test_model_isolation(self, indexed):
        other_model = HashingEmbedder(model_name="test/other")
        indexed.declare_model(other_model.model_name, other_model.dimension)

        outcome = Searcher(indexed, other_model).vsearch("how to configure authentication")

        assert outcome.results == []

    def test_expanded_query_fuses_variants(self, indexed, embedder):
        generator = ScriptedGenerator(
            "vec: secure login setup\nhyde: JWT tokens and OAuth2 protect the API\nlex: jwt oauth"
        )
        searcher = Searcher(indexed, embedder, QueryExpander(generator))

        outcome = searcher.query("configure authentication")

        assert [v.type for v in outcome.variants] == ["vec", "vec", "hyde"]
        assert outcome.variants[0].text == "configure authentication"
        assert outcome.results[0].path == "auth.md"
        # one embed call per searchable variant
        assert embedder.calls == 3 + 3

    def test_failed_variant_degrades_gracefully(self, indexed):
        embedder = HashingEmbedder(fail_on=["boom"])
        searcher = Searcher(
            indexed, embedder, QueryExpander(ScriptedGenerator("vec: boom variant"))
        )

        outcome = searcher.query("PostgreSQL connection string")

        assert outcome.failed_variants == 1
        assert outcome.results[0].path == "database.md"

    def test_original_query_failure_is_fatal(self, indexed):
        embedder = HashingEmbedder(fail_on=["boom"])
        searcher = Searcher(indexed, embedder, QueryExpander(ScriptedGenerator("vec: fine")))

        with pytest.raises(SearchError):
            searcher.query("boom")

    def test_expansion_failure_falls_back_to_original(self, indexed, embedder):
        generator = ScriptedGenerator(error=ProviderError("down"))
        searcher = Searcher(indexed, embedder, QueryExpander(generator))

        outcome = searcher.query("PostgreSQL connection string")

        assert [v.text for v in outcome.variants] == ["PostgreSQL connection string"]
        assert outcome.results[0].path == "database.md"

    def test_removed_collection_is_not_returned(self, indexed, embedder):
        indexed.remove_collection("docs")
        assert Searcher(indexed, embedder).vsearch("PostgreSQL connection string").results == []


@pytest.fixture
def crowded(indexed, embedder):
    """Sample docs plus more close matches than the candidate limit, in another collection."""
    indexer = Indexer(indexed)
    for i in range(DEFAULT_CANDIDATE_LIMIT + 10):
        indexer.index_document("noise", f"noise-{i}.md", f"configure authentication {i}")
    EmbeddingPipeline(indexed, embedder).embed_pending()
    return indexed


class TestCandidateLimit:
    def test_noise_outranks_sample_docs(self, crowded, embedder):
        results = Searcher(crowded, embedder).vsearch("configure authentication").results

        assert {r.collection for r in results} == {"noise"}

    def test_collection_filter_with_crowded_index(self, crowded, embedder):
        outcome = Searcher(crowded, embedder).vsearch("configure authentication", collection="docs")

        assert outcome.results[0].path == "auth.md"
        assert {r.collection for r in outcome.results} == {"docs"}

    def test_removed_collection_does_not_hide_live_documents(self, crowded, embedder):
        crowded.remove_collection("noise")

        outcome = Searcher(crowded, embedder).vsearch("configure authentication")

        assert outcome.results[0].path == "auth.md"
        assert len(outcome.results) == 3

    def test_edited_documents_leave_no_stale_candidates(self, crowded, embedder):
        indexer = Indexer(crowded)
        for i in range(DEFAULT_CANDIDATE_LIMIT + 10):
            indexer.index_document("noise", f"noise-{i}.md", f"unrelated gardening notes {i}")

        outcome = Searcher(crowded, embedder).vsearch("configure authentication")

        assert outcome.results[0].path == "auth.md"
