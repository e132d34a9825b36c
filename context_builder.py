"""
Fallback Context Builder

Assembles the reference-document digest and the system prompt handed to the
language model when the Service Matrix has no confident direct answer.

Key Features:
- Service Matrix always included, other documents per agent selection
- Per-document character cap to keep the prompt bounded
- Closest (below-threshold) matrix row surfaced as extra grounding
- Fixed compliance rules and output format for the model

Configuration:
- COMPLIANCE_CONTEXT_CHARS: character cap per document (default 6000)

Author: Quinn Evans
"""

from __future__ import annotations

import json
import os
from typing import Optional

from matrix_resolver import COLUMN_CONVENTION, MatchCandidate


MAX_CONTEXT_CHARS = int(os.getenv("COMPLIANCE_CONTEXT_CHARS", "6000"))

NOT_FOUND = "NOT FOUND IN DOCS"
SECTION_SEPARATOR = "\n\n---\n\n"

# (document key, digest label); order is the order sections appear in
DIGEST_SECTIONS = (
    ("qaVoice", "QA VOICE RUBRIC"),
    ("qaGroup", "QA GROUPS RUBRIC"),
    ("matrix", "SERVICE MATRIX 2026"),
    ("trainingGuide", "TRAINING GUIDE (JSON)"),
)

ALWAYS_INCLUDED = frozenset({"matrix"})


def _serialize(document, limit: int) -> str:
    text = json.dumps(document, ensure_ascii=False, separators=(",", ":"), default=str)
    return text[:limit]


def build_context(
    documents: dict,
    selection: Optional[dict] = None,
    candidate: Optional[MatchCandidate] = None,
    max_chars: int = MAX_CONTEXT_CHARS,
) -> str:
    """
    Build the document digest for the fallback prompt.

    Args:
        documents (dict): Loaded documents keyed by document key
        selection (dict, optional): Document key -> bool, as ticked by the agent.
            The Service Matrix is included regardless.
        candidate (MatchCandidate, optional): Closest matrix row that fell
            below the direct-answer threshold
        max_chars (int): Character cap per document

    Returns:
        str: Labelled sections joined by separators, or "NOT FOUND IN DOCS"
    """
    selection = selection or {}
    parts = []

    if candidate is not None:
        parts.append(
            f"CLOSEST MATRIX ROW (score {candidate.score}, not confirmed):\n"
            f"Sheet: {candidate.tab_name} | Row: {candidate.row_number} | Columns: {COLUMN_CONVENTION}\n"
            f"Concern: {candidate.matched_text}\n"
            f"Procedure: {candidate.answer_text}"
        )

    for key, label in DIGEST_SECTIONS:
        wanted = key in ALWAYS_INCLUDED or bool(selection.get(key))
        document = documents.get(key)
        if wanted and document:
            parts.append(f"{label}:\n{_serialize(document, max_chars)}")

    return SECTION_SEPARATOR.join(parts) or NOT_FOUND


def build_system_prompt(context: str) -> str:
    """Wrap the document digest in the compliance analyst instructions."""
    return f"""
You are "QA Master", the strictest HotelPlanner Call Center Quality & Compliance Analyst.

YOUR JOB
- Give agents the exact compliant procedure for the guest situation.
- Use ONLY the provided documents as your source of truth:
{context}

NON-NEGOTIABLE RULES (HARD FAIL IF BROKEN)
1) Do NOT use outside knowledge. If the docs do not cover it, say: "{NOT_FOUND}" and ask 1-2 clarifying questions.
2) Do NOT invent policies, time limits, fees, refund eligibility, or steps.
3) ALWAYS prefer the most restrictive, compliance-safe option when several exist, and cite it.
4) If documents conflict, resolve by priority:
   Service Matrix 2026 > QA Voice > QA Groups > Training Guide
   If still unclear, output "CONFLICT IN DOCS", quote the conflicting sections and ask what to follow.
5) Never promise outcomes (refund approved, cancellation confirmed) unless the docs say it can be confirmed.
6) For any booking issue, require the verification fields that apply:
   Itinerary/confirmation #, guest name, hotel name, check-in, check-out, destination/city.
7) Keep it short, executable and measurable.

OUTPUT FORMAT (ALWAYS EXACTLY THIS)
Acknowledge:
- (1 sentence empathic acknowledgement)

Decision:
- One line: the correct path / dropdown / queue / action outcome

Steps:
1) ...
2) ...
3) ...

Do/Don't Script (agent lines):
- Say: "..."
- Don't say: "..."

Citations:
- [Doc: <name> | Sheet/Section: <sheet/heading> | Row/Cell: <reference>]
(If you cannot cite: write "NO CITATION AVAILABLE" and stop.)

QUALITY CHECK
- Compliance Risk: Low/Medium/High + 1 reason
- Missing Info Needed: (list) or "None"

Now answer the user question using the rules above.
""".strip()
