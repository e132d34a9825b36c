"""
Service Matrix Direct-Match Resolver

Matches free-text agent questions against the "concern" rows of the Service
Matrix workbook and returns the pre-authored remedy for the best row. A strong
match lets the assistant answer without calling the language model at all.

Key Features:
- Symmetric text normalization for cells, headers and questions
- Alias expansion for known phrasings of the same guest issue
- Header row auto-detection for locating routing flag columns
- Tiered scoring (exact, substring, token overlap)
- Remedy extraction with Slack / Refund Queue / Ticket / Supervisor flags

Algorithm:
- Normalize the question and expand it into query variants
- For every tab, find the header row once, then score every row's concern
  cell against every variant (stop early on a perfect score)
- Rows with no score or no actionable content are dropped
- The highest score wins; ties go to the row found first

Layout convention of the workbook:
- Column B (index 1) holds the concern text, column A for single-cell rows
- Column C (index 2) holds the remedy text

The resolver performs no I/O and never raises for malformed input.

Author: Quinn Evans
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from matrix_rules import DEFAULT_RULES, MatrixRules


CONCERN_COLUMN = 1
REMEDY_COLUMN = 2
COLUMN_CONVENTION = "B (concern) -> C (remedy)"

ABSENT_VALUES = frozenset({"", "no", "n", "none", "na", "n a", "0", "false"})
YES_VALUES = frozenset({"y", "yes", "true", "1"})
NO_VALUES = frozenset({"n", "no", "false", "0"})

_WHITESPACE = re.compile(r"\s+")

MatrixDocument = Mapping[str, Sequence[Sequence[object]]]


# ---------------------------------------------------------------- Normalization

def _as_text(value) -> str:
    if value is None:
        return ""
    try:
        return str(value)
    except Exception:
        return ""


def _is_kept(ch: str) -> bool:
    # Letters (L*) and decimal digits (Nd); fractions, marks and symbols are dropped
    if ch.isspace():
        return True
    category = unicodedata.category(ch)
    return category.startswith("L") or category == "Nd"


def normalize(value) -> str:
    """Lower-case, drop punctuation, collapse whitespace and trim."""
    text = _as_text(value).lower()
    if not text:
        return ""
    text = "".join(ch for ch in text if _is_kept(ch))
    return _WHITESPACE.sub(" ", text).strip()


def is_absent(value) -> bool:
    """True for blank cells and explicit negatives such as "No" or "N/A"."""
    return normalize(value) in ABSENT_VALUES


def normalize_yes_no(value) -> str:
    """
    Collapse boolean-ish flag values to "Yes"/"No".

    Anything else (a Slack channel name, a queue name) is returned as the
    original trimmed text.
    """
    normalized = normalize(value)
    if normalized in YES_VALUES:
        return "Yes"
    if normalized in NO_VALUES:
        return "No"
    return _as_text(value).strip()


def expand_variants(normalized_question: str, rules: MatrixRules = DEFAULT_RULES) -> set[str]:
    """
    Expand a normalized question into the set of query variants to score.

    Args:
        normalized_question (str): Output of normalize()
        rules (MatrixRules): Alias table to apply

    Returns:
        set[str]: The question itself plus every alias whose trigger it contains
    """
    variants = {normalized_question}
    for alias in rules.aliases:
        triggers = [normalize(trigger) for trigger in alias.triggers]
        if any(trigger and trigger in normalized_question for trigger in triggers):
            variants.update(normalize(expansion) for expansion in alias.expansions)
    variants.discard("")
    return variants


# ---------------------------------------------------------------- Rows and headers

@dataclass(frozen=True)
class Row:
    """
    One spreadsheet row with the matrix column convention in one place.

    Attributes:
        cells (tuple): Raw cell values in column order
    """

    cells: tuple

    @classmethod
    def wrap(cls, raw) -> Optional["Row"]:
        """Wrap a raw row, or return None when it is not a list of cells."""
        if isinstance(raw, Row):
            return raw
        if not isinstance(raw, (list, tuple)):
            return None
        return cls(tuple(raw))

    def cell(self, index: int) -> str:
        if index < 0 or index >= len(self.cells):
            return ""
        return _as_text(self.cells[index])

    @property
    def concern_index(self) -> int:
        return CONCERN_COLUMN if len(self.cells) >= 2 else 0

    @property
    def concern_cell(self) -> str:
        return self.cell(self.concern_index)

    @property
    def remedy_cell(self) -> str:
        return self.cell(REMEDY_COLUMN)


def detect_header_row(rows, rules: MatrixRules = DEFAULT_RULES) -> Optional[int]:
    """
    Find the header row within the first rows of a sheet.

    A header is the first row whose normalized cells, joined together,
    contain one of the header tokens ("instructions", "concern", "issue").

    Returns:
        int | None: Row index, or None when no header sits in the scan window
    """
    if not isinstance(rows, (list, tuple)):
        return None

    limit = min(len(rows), rules.header_scan_limit)
    for index in range(limit):
        row = Row.wrap(rows[index])
        if row is None:
            continue
        joined = " | ".join(normalize(cell) for cell in row.cells)
        if any(token in joined for token in rules.header_tokens):
            return index
    return None


def build_header_map(header_row) -> dict[str, int]:
    """Map normalized header labels to their first column index."""
    row = Row.wrap(header_row) if header_row is not None else None
    if row is None:
        return {}

    header_map: dict[str, int] = {}
    for index, cell in enumerate(row.cells):
        label = normalize(cell)
        if label and label not in header_map:
            header_map[label] = index
    return header_map


# ---------------------------------------------------------------- Scoring

def score(cell_normalized: str, query_normalized: str) -> int:
    """
    Score a normalized concern cell against one normalized query variant.

    Tiers, first match wins:
        100 - exact match
        85  - either string contains the other
        45..80 - token overlap of at least 1 (short queries) or 2 tokens
        0   - anything else

    Overlap is capped at 80 so it never outranks a substring hit.
    """
    if not cell_normalized or not query_normalized:
        return 0

    if cell_normalized == query_normalized:
        return 100

    if query_normalized in cell_normalized or cell_normalized in query_normalized:
        return 85

    cell_tokens = cell_normalized.split()
    query_tokens = query_normalized.split()
    if not cell_tokens or not query_tokens:
        return 0

    cell_set = set(cell_tokens)
    overlap = sum(1 for token in query_tokens if token in cell_set)
    minimum = 1 if len(query_tokens) <= 2 else 2
    if overlap < minimum:
        return 0

    return min(80, 45 + overlap * 10)


def best_variant_score(cell_normalized: str, variants) -> int:
    best = 0
    for variant in variants:
        best = max(best, score(cell_normalized, variant))
        if best == 100:
            break
    return best


# ---------------------------------------------------------------- Extraction

def extract_answer(row, header_map: Mapping[str, int], rules: MatrixRules = DEFAULT_RULES) -> Optional[str]:
    """
    Build the answer text for a matched row.

    The remedy cell is used verbatim unless it is blank or a negative. Each
    routing flag column found in the header map adds a "<Label>: <value>"
    line when its value is present and not a "No".

    Args:
        row (Row | list): Matched row
        header_map (dict): Normalized header label -> column index
        rules (MatrixRules): Ordered flag labels to look for

    Returns:
        str | None: Answer text, or None when the row has nothing actionable
    """
    row = Row.wrap(row)
    if row is None:
        return None

    remedy = row.remedy_cell
    base = "" if is_absent(remedy) else remedy.strip()

    extras = []
    for label, display in rules.flag_labels:
        column = header_map.get(normalize(label))
        if column is None:
            continue
        value = normalize_yes_no(row.cell(column))
        if is_absent(value) or normalize(value) in ("no", "n"):
            continue
        extras.append(f"{display}: {value}")

    if not base and not extras:
        return None
    if base and extras:
        return base + "\n\n" + "\n".join(extras)
    return base or "\n".join(extras)


# ---------------------------------------------------------------- Search

@dataclass(frozen=True)
class MatchCandidate:
    """
    Best-scoring matrix row for a question.

    Attributes:
        score (int): 45-100, higher is better
        tab_name (str): Workbook tab the row came from
        row_index (int): 0-based row position in the tab
        column_index (int): Column holding the matched concern text
        matched_text (str): Concern cell as authored
        answer_text (str): Remedy plus routing flags
    """

    score: int
    tab_name: str
    row_index: int
    column_index: int
    matched_text: str
    answer_text: str

    @property
    def row_number(self) -> int:
        """1-based row number as shown in the spreadsheet."""
        return self.row_index + 1

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "tabName": self.tab_name,
            "rowIndex": self.row_index,
            "columnIndex": self.column_index,
            "matchedText": self.matched_text,
            "answerText": self.answer_text,
        }


def search(document: MatrixDocument, raw_question, rules: MatrixRules = DEFAULT_RULES) -> Optional[MatchCandidate]:
    """
    Find the best matrix row for a question.

    Args:
        document (dict): Tab name -> list of rows
        raw_question (str): Question as typed by the agent
        rules (MatrixRules): Alias, header and flag tables

    Returns:
        MatchCandidate | None: Highest scoring row with an actionable answer.
            None means "no direct answer" and is not an error.
    """
    question = normalize(raw_question)
    if not question:
        return None

    if not isinstance(document, Mapping):
        return None

    variants = expand_variants(question, rules)
    best: Optional[MatchCandidate] = None

    for tab_name, rows in document.items():
        if not isinstance(rows, (list, tuple)):
            continue

        header_index = detect_header_row(rows, rules)
        header_map = build_header_map(rows[header_index]) if header_index is not None else {}

        for row_index, raw_row in enumerate(rows):
            row = Row.wrap(raw_row)
            if row is None:
                continue

            concern = normalize(row.concern_cell)
            if not concern:
                continue

            row_score = best_variant_score(concern, variants)
            if row_score == 0:
                continue

            answer = extract_answer(row, header_map, rules)
            if answer is None:
                continue

            candidate = MatchCandidate(
                score=row_score,
                tab_name=str(tab_name),
                row_index=row_index,
                column_index=row.concern_index,
                matched_text=row.concern_cell.strip(),
                answer_text=answer,
            )
            if best is None or candidate.score > best.score:
                best = candidate

    return best


class MatrixResolver:
    """
    Direct-match engine bound to one set of rule tables.

    Attributes:
        rules (MatrixRules): Alias, header and flag tables used for every search
    """

    def __init__(self, rules: MatrixRules | None = None):
        self.rules = rules or DEFAULT_RULES

    def search(self, document: MatrixDocument, question: str) -> Optional[MatchCandidate]:
        return search(document, question, self.rules)
