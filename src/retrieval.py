"""Optional retrieval of supporting context: the backend interface and an in-memory diff retriever."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from src.clarity import MISSING, NULL, REQUIRED, Gap
from src.models import Concern

logger = logging.getLogger(__name__)

CONCERN_QUERY_LIMIT = 5
CONCERN_TOP_K = 2
GAP_TOP_K = 3
MAX_EXCERPT_CHARS = 1200

_FILE_HEADER = re.compile(r"^diff --git a/(\S+) b/(\S+)", re.MULTILINE)
_NEW_FILE = re.compile(r"^\+\+\+ b/(\S+)", re.MULTILINE)
_HUNK_HEADER = re.compile(r"^@@ .*? @@.*$", re.MULTILINE)
_TERM = re.compile(r"[a-z0-9_]{3,}")

# pillar -> (evidence query when the value is missing/null, rationale query otherwise)
GAP_QUERIES: dict[str, tuple[str, str]] = {
    "functionalImpact": (
        "user-facing features, endpoints or business logic changed",
        "callers and user flows affected by the changed functions",
    ),
    "idealTimeHours": (
        "scope of the change: files, functions and modules touched",
        "size and spread of the modified logic",
    ),
    "testCoverage": (
        "test files, test functions and assertions added or modified",
        "edge cases and error paths exercised by the tests",
    ),
    "codeQuality": (
        "naming, structure and error handling in the changed code",
        "duplication, code smells or readability issues in the diff",
    ),
    "codeComplexity": (
        "conditionals, loops and nesting in the changed functions",
        "coupling between modules and number of branches introduced",
    ),
    "actualTimeHours": (
        "amount of implementation work visible in the diff",
        "iterations, rework or debugging traces in the change",
    ),
    "technicalDebtHours": (
        "TODO, FIXME, workarounds or shortcuts introduced",
        "hard-coded values, missing abstractions or skipped error handling",
    ),
    "debtReductionHours": (
        "removed dead code, cleanup or refactoring of legacy code",
        "simplifications that replace older implementations",
    ),
}


@dataclass(frozen=True)
class RetrievalQuery:
    query: str
    top_k: int = 3
    source: str = "diff"  # "diff" or "docs"


@dataclass(frozen=True)
class RetrievalResult:
    query: RetrievalQuery
    results_text: str


class RetrievalBackend(ABC):
    """Anything that can answer batches of context queries."""

    @abstractmethod
    async def query_batch(self, queries: list[RetrievalQuery]) -> list[RetrievalResult]:
        """Answer queries in order; one result per query, empty text when nothing matched."""
        ...


@dataclass(frozen=True)
class DiffChunk:
    path: str
    header: str
    text: str


def _terms(text: str) -> set[str]:
    return set(_TERM.findall(text.lower()))


def split_diff(diff: str) -> list[DiffChunk]:
    """Split a unified diff into one chunk per hunk, tagged with its file path.

    Text that is not a git diff becomes a single chunk so it stays searchable.
    """
    files = [m for m in _FILE_HEADER.finditer(diff)]
    if not files:
        text = diff.strip()
        return [DiffChunk(path="", header="", text=text)] if text else []

    chunks: list[DiffChunk] = []
    for index, match in enumerate(files):
        end = files[index + 1].start() if index + 1 < len(files) else len(diff)
        section = diff[match.start():end]
        new_file = _NEW_FILE.search(section)
        path = new_file.group(1) if new_file else match.group(2)
        hunks = list(_HUNK_HEADER.finditer(section))
        if not hunks:
            chunks.append(DiffChunk(path=path, header="", text=section.strip()))
            continue
        for h_index, hunk in enumerate(hunks):
            h_end = hunks[h_index + 1].start() if h_index + 1 < len(hunks) else len(section)
            chunks.append(DiffChunk(path=path, header=hunk.group(0), text=section[hunk.start():h_end].strip()))
    return chunks


class DiffHunkRetriever(RetrievalBackend):
    """Term-overlap search over the hunks of a single diff. Holds no external resources."""

    def __init__(self, diff: str) -> None:
        self._chunks = split_diff(diff)
        self._chunk_terms = [_terms(f"{c.path} {c.text}") for c in self._chunks]
        logger.debug("Diff retriever indexed %d hunks", len(self._chunks))

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def search(self, query: str, top_k: int) -> list[DiffChunk]:
        wanted = _terms(query)
        if not wanted or top_k <= 0:
            return []
        scored = [
            (len(wanted & terms), index)
            for index, terms in enumerate(self._chunk_terms)
            if wanted & terms
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [self._chunks[index] for _, index in scored[:top_k]]

    async def query_batch(self, queries: list[RetrievalQuery]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for query in queries:
            if query.source != "diff":
                results.append(RetrievalResult(query=query, results_text=""))
                continue
            hits = self.search(query.query, query.top_k)
            excerpts = []
            for chunk in hits:
                label = f"{chunk.path} {chunk.header}".strip() or "diff"
                excerpts.append(f"[{label}]\n{chunk.text[:MAX_EXCERPT_CHARS]}")
            results.append(RetrievalResult(query=query, results_text="\n\n".join(excerpts)))
        await asyncio.sleep(0)
        return results


def queries_for_gaps(findings: Iterable[Gap], top_k: int = GAP_TOP_K) -> list[RetrievalQuery]:
    """Map clarity gaps to pillar-specific context queries, one per pillar."""
    queries: list[RetrievalQuery] = []
    seen: set[str] = set()
    for gap in findings:
        if gap.pillar in seen or gap.pillar not in GAP_QUERIES:
            continue
        seen.add(gap.pillar)
        evidence, rationale = GAP_QUERIES[gap.pillar]
        text = evidence if gap.kind in (MISSING, NULL, REQUIRED) else rationale
        queries.append(RetrievalQuery(query=text, top_k=top_k, source="diff"))
    return queries


def queries_for_concerns(concerns: Iterable[Concern], limit: int = CONCERN_QUERY_LIMIT) -> list[RetrievalQuery]:
    return [
        RetrievalQuery(query=concern.concern, top_k=CONCERN_TOP_K, source="diff")
        for concern in list(concerns)[:limit]
    ]


def format_retrieved(results: list[RetrievalResult]) -> str:
    """Render non-empty results as prompt sections; empty string when nothing matched."""
    sections = [
        f"### {result.query.query}\n{result.results_text}"
        for result in results
        if result.results_text.strip()
    ]
    return "\n\n".join(sections)


def changed_files(diff: str) -> tuple[str, ...]:
    """File paths named in a unified diff, in order, without duplicates."""
    paths: list[str] = []
    for match in _FILE_HEADER.finditer(diff):
        if match.group(2) not in paths:
            paths.append(match.group(2))
    return tuple(paths)
