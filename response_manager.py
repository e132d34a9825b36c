"""
Response Management for the Compliance Assistant

Decides how each agent question is answered. The Service Matrix is searched
first; a confident row is served directly with its citation. Otherwise the
question goes to the generative fallback together with a digest of the
reference documents.

Key Features:
- Direct-match policy with a configurable confidence threshold
- Citation metadata (sheet, 1-based row, column convention)
- Fallback calls bounded by a wall-clock timeout
- LRU cache of fallback answers with fuzzy duplicate detection
- Local mode echo when no fallback provider is configured

Configuration:
- COMPLIANCE_MATCH_THRESHOLD: minimum score for a direct answer (default 70)
- COMPLIANCE_FALLBACK_TIMEOUT: seconds to wait for the fallback (default 55)
- COMPLIANCE_CACHE_SIZE: cached fallback answers (default 50)
- COMPLIANCE_DUPLICATE_THRESHOLD: rapidfuzz ratio treated as the same question (default 92)

Dependencies:
- rapidfuzz: Fuzzy matching of repeated questions against the cache

Author: Quinn Evans
"""

from __future__ import annotations

import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

from rapidfuzz import fuzz

from assist_stats import AssistStats
from context_builder import build_context, build_system_prompt
from exception_logger import debug, log_error, log_exception
from matrix_resolver import COLUMN_CONVENTION, MatchCandidate, MatrixResolver, normalize


MATCH_THRESHOLD = int(os.getenv("COMPLIANCE_MATCH_THRESHOLD", "70"))
FALLBACK_TIMEOUT = float(os.getenv("COMPLIANCE_FALLBACK_TIMEOUT", "55"))
CACHE_LIMIT = int(os.getenv("COMPLIANCE_CACHE_SIZE", "50"))
DUPLICATE_THRESHOLD = int(os.getenv("COMPLIANCE_DUPLICATE_THRESHOLD", "92"))

MATRIX_DOC_NAME = "Service Matrix"

# fallback(question, system_prompt) -> answer text
GenerativeFallback = Callable[[str, str], str]


class FallbackError(RuntimeError):
    """Fallback failure carrying an HTTP-style status for the caller."""

    def __init__(self, message: str, status: int = 502):
        super().__init__(message)
        self.status = status


@dataclass
class AssistResponse:
    """
    Outcome of one question.

    Attributes:
        ok (bool): False when the question could not be answered
        answer (str): Text to show the agent
        source (str): "matrix", "fallback", "cache", "local" or "error"
        score (int | None): Matrix score of the closest row, if any
        citation (dict | None): Sheet/row reference for direct answers
        candidate (dict | None): Closest matrix row, direct or not
        error (str | None): Failure message when ok is False
        status (int): HTTP-style status code
    """

    ok: bool
    answer: str = ""
    source: str = "error"
    score: Optional[int] = None
    citation: Optional[dict] = None
    candidate: Optional[dict] = None
    error: Optional[str] = None
    status: int = 200
    request_id: str = field(default="", repr=False)

    def to_dict(self) -> dict:
        payload = {"ok": self.ok, "source": self.source, "status": self.status}
        if self.ok:
            payload["answer"] = self.answer
        else:
            payload["error"] = self.error
        if self.score is not None:
            payload["score"] = self.score
        if self.citation:
            payload["citation"] = self.citation
        if self.candidate:
            payload["candidate"] = self.candidate
        return payload


def matrix_citation(candidate: MatchCandidate) -> dict:
    return {
        "doc": MATRIX_DOC_NAME,
        "sheet": candidate.tab_name,
        "row": candidate.row_number,
        "columns": COLUMN_CONVENTION,
    }


def format_direct_answer(candidate: MatchCandidate) -> str:
    """Remedy text followed by its citation line."""
    citation = matrix_citation(candidate)
    return (
        f"{candidate.answer_text}\n\n"
        "Citations:\n"
        f"- [Doc: {citation['doc']} | Sheet: {citation['sheet']} | "
        f"Row: {citation['row']} | Columns: {citation['columns']}]"
    )


class ResponseManager:
    """
    Routes questions between the Service Matrix and the generative fallback.

    Attributes:
        library: Object exposing a `documents` mapping (see DocumentLibrary)
        fallback (callable | None): fallback(question, system_prompt) -> str
        resolver (MatrixResolver): Direct-match engine
        threshold (int): Minimum score served without the fallback
        timeout (float): Seconds to wait for the fallback
        stats (AssistStats): Outcome counters
    """

    def __init__(
        self,
        library,
        fallback: Optional[GenerativeFallback] = None,
        resolver: Optional[MatrixResolver] = None,
        threshold: int = MATCH_THRESHOLD,
        timeout: float = FALLBACK_TIMEOUT,
        stats: Optional[AssistStats] = None,
    ):
        self.library = library
        self.fallback = fallback
        self.resolver = resolver or MatrixResolver()
        self.threshold = threshold
        self.timeout = timeout
        self.stats = stats or AssistStats()
        self.response_cache = OrderedDict()
        self.cache_lock = threading.Lock()
        self.cache_limit = CACHE_LIMIT
        self.duplicate_threshold = DUPLICATE_THRESHOLD

    # ---------------------------------------------------------------- Public API

    def answer(self, question: str, selection: Optional[dict] = None) -> AssistResponse:
        """
        Answer one agent question.

        Args:
            question (str): Guest situation as typed by the agent
            selection (dict, optional): Document key -> bool for the fallback digest

        Returns:
            AssistResponse: Direct matrix answer, fallback answer, or an error
        """
        request_id = f"req_{int(time.time() * 1000)}"
        question = (question or "").strip()
        if not question:
            return AssistResponse(ok=False, error="Missing question", status=400, request_id=request_id)

        debug("response_manager", f"[{request_id}] Question: {question[:120]}")
        start = time.time()

        # One snapshot per request; a reload swaps the reference, never mutates it
        documents = self.library.documents or {}
        candidate = self.resolver.search(documents.get("matrix") or {}, question)

        if candidate is not None and candidate.score >= self.threshold:
            self._record("direct", start)
            debug("response_manager", f"[{request_id}] Matrix hit score={candidate.score} "
                                      f"sheet={candidate.tab_name} row={candidate.row_number}")
            return AssistResponse(
                ok=True,
                answer=format_direct_answer(candidate),
                source="matrix",
                score=candidate.score,
                citation=matrix_citation(candidate),
                candidate=candidate.to_dict(),
                request_id=request_id,
            )

        response = self._fallback_response(question, selection, documents, candidate, request_id)
        self._record(response.source if response.ok else "error", start)
        return response

    def reload_documents(self):
        """Reload the document library and drop answers built from the old documents."""
        documents = self.library.reload()
        self.clear_cache()
        return documents

    def clear_cache(self):
        with self.cache_lock:
            self.response_cache.clear()

    def stop(self):
        """Drop cached answers. Fallback threads still running are daemons."""
        self.clear_cache()

    # ---------------------------------------------------------------- Fallback

    def _fallback_response(self, question, selection, documents, candidate, request_id) -> AssistResponse:
        score = candidate.score if candidate else None
        candidate_dict = candidate.to_dict() if candidate else None

        if self.fallback is None:
            return AssistResponse(
                ok=True,
                answer=f"[LOCAL MODE]\nQ: {question}",
                source="local",
                score=score,
                candidate=candidate_dict,
                request_id=request_id,
            )

        cache_key = self._build_cache_key(question, selection)
        cached = self._get_cached_response(cache_key)
        if cached:
            return AssistResponse(
                ok=True, answer=cached, source="cache", score=score,
                candidate=candidate_dict, request_id=request_id,
            )

        context = build_context(documents, selection, candidate)
        system_prompt = build_system_prompt(context)

        try:
            answer = self._call_fallback(question, system_prompt, request_id)
        except FallbackError as exc:
            return AssistResponse(
                ok=False, error=str(exc), status=exc.status, score=score,
                candidate=candidate_dict, request_id=request_id,
            )

        self._store_cached_response(cache_key, answer)
        return AssistResponse(
            ok=True, answer=answer, source="fallback", score=score,
            candidate=candidate_dict, request_id=request_id,
        )

    def _call_fallback(self, question: str, system_prompt: str, request_id: str = "") -> str:
        # Each call gets its own daemon thread so a hung provider never holds
        # a slot that later requests need
        outcome = {}

        def run():
            try:
                outcome["answer"] = self.fallback(question, system_prompt)
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=run, daemon=True, name=f"fallback-{request_id}")
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            log_error(f"Fallback timed out after {self.timeout}s", module="response_manager", context=request_id)
            raise FallbackError("Request timeout", status=504)

        if "error" in outcome:
            exc = outcome["error"]
            log_exception(exc, module="response_manager", context=request_id)
            status = getattr(exc, "status", None)
            raise FallbackError(str(exc) or "Unknown fallback error",
                                status=status if isinstance(status, int) else 502) from exc

        answer = (outcome.get("answer") or "").strip()
        return answer or "No response"

    # ---------------------------------------------------------------- Cache

    def _build_cache_key(self, question, selection):
        selected = tuple(sorted(key for key, wanted in (selection or {}).items() if wanted))
        return (normalize(question), selected)

    def _get_cached_response(self, cache_key):
        question, selected = cache_key
        if not question:
            return None
        with self.cache_lock:
            response = self.response_cache.get(cache_key)
            if response is None:
                for (cached_question, cached_selected), cached in self.response_cache.items():
                    if cached_selected != selected:
                        continue
                    if fuzz.ratio(question, cached_question) >= self.duplicate_threshold:
                        cache_key = (cached_question, cached_selected)
                        response = cached
                        break
            if response:
                self.response_cache.move_to_end(cache_key)
            return response

    def _store_cached_response(self, cache_key, response):
        if not cache_key[0] or not response:
            return
        with self.cache_lock:
            self.response_cache[cache_key] = response
            self.response_cache.move_to_end(cache_key)
            while len(self.response_cache) > self.cache_limit:
                self.response_cache.popitem(last=False)

    def _record(self, outcome: str, start: float):
        self.stats.record(outcome, (time.time() - start) * 1000.0)
