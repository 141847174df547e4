"""Tests for src/retrieval.py."""

from src.clarity import NULL, REASONING, REQUIRED, Gap
from src.expertise import Band
from src.models import Concern
from src.retrieval import (
    GAP_QUERIES,
    DiffHunkRetriever,
    RetrievalQuery,
    RetrievalResult,
    changed_files,
    format_retrieved,
    queries_for_concerns,
    queries_for_gaps,
    split_diff,
)
from tests.conftest import SAMPLE_DIFF


def test_split_diff_one_chunk_per_hunk():
    chunks = split_diff(SAMPLE_DIFF)
    assert [c.path for c in chunks] == ["app/orders.py", "tests/test_orders.py"]
    assert chunks[0].header == "@@ -10,6 +10,12 @@ class OrderService:"
    assert "order total must be positive" in chunks[0].text


def test_split_diff_plain_text_is_one_chunk():
    chunks = split_diff("just a patch description\nwith two lines")
    assert len(chunks) == 1
    assert chunks[0].path == ""
    assert split_diff("   ") == []


def test_search_ranks_by_term_overlap():
    retriever = DiffHunkRetriever(SAMPLE_DIFF)
    assert retriever.chunk_count == 2
    hits = retriever.search("order total must be positive", top_k=1)
    assert [h.path for h in hits] == ["app/orders.py"]
    assert retriever.search("zebra migration", top_k=3) == []
    assert retriever.search("order", top_k=0) == []


async def test_query_batch_answers_in_order():
    retriever = DiffHunkRetriever(SAMPLE_DIFF)
    queries = [
        RetrievalQuery("order total must be positive", top_k=1),
        RetrievalQuery("architecture decision records", source="docs"),
        RetrievalQuery("zebra"),
    ]
    results = await retriever.query_batch(queries)
    assert [r.query for r in results] == queries
    assert results[0].results_text.startswith("[app/orders.py @@ -10,6 +10,12 @@ class OrderService:]\n")
    assert results[1].results_text == ""
    assert results[2].results_text == ""


def test_queries_for_gaps_one_per_pillar():
    findings = [
        Gap("testCoverage", NULL, Band.PRIMARY, True, "g1"),
        Gap("testCoverage", REASONING, Band.PRIMARY, True, "g2"),
        Gap("codeQuality", REASONING, Band.TERTIARY, False, "g3"),
        Gap("codeComplexity", REQUIRED, Band.TERTIARY, True, "g4"),
    ]
    queries = queries_for_gaps(findings)
    assert [q.query for q in queries] == [
        GAP_QUERIES["testCoverage"][0],
        GAP_QUERIES["codeQuality"][1],
        GAP_QUERIES["codeComplexity"][0],
    ]
    assert all(q.top_k == 3 and q.source == "diff" for q in queries)


def test_queries_for_concerns_limited():
    concerns = [Concern("sdet", f"concern {i}", 0) for i in range(7)]
    queries = queries_for_concerns(concerns)
    assert len(queries) == 5
    assert queries[0] == RetrievalQuery("concern 0", top_k=2, source="diff")


def test_format_retrieved_skips_empty_results():
    results = [
        RetrievalResult(RetrievalQuery("first"), "hit one"),
        RetrievalResult(RetrievalQuery("second"), "  "),
        RetrievalResult(RetrievalQuery("third"), "hit three"),
    ]
    assert format_retrieved(results) == "### first\nhit one\n\n### third\nhit three"
    assert format_retrieved([]) == ""


def test_changed_files_in_diff_order():
    assert changed_files(SAMPLE_DIFF) == ("app/orders.py", "tests/test_orders.py")
    assert changed_files("no diff here") == ()
