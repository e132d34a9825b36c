"""
Service Matrix Rule Tables

Holds the hand-maintained data tables the matrix resolver works from:
the query alias table, the ordered auxiliary flag columns and the tokens
used to spot a header row. Tables can be overridden from a JSON file so
new synonyms or flag columns ship without code changes.

JSON layout (every key optional, missing keys keep the defaults):

    {
        "aliases": [
            {"triggers": ["double charged"], "expansions": ["duplicate charge"]}
        ],
        "flag_labels": [["slack", "Slack"], ["refund queue", "Refund Queue"]],
        "header_tokens": ["instructions", "concern", "issue"],
        "header_scan_limit": 40
    }

Author: Quinn Evans
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path


RULES_FILE = os.getenv("COMPLIANCE_RULES_FILE", "")

_BILLING_TERMS = ("double charged", "charged twice", "double charge")

DEFAULT_ALIASES = (
    # Each trigger also pulls in its siblings
    (_BILLING_TERMS, _BILLING_TERMS + ("duplicate charge",)),
    (("early departure",), ("early departure after check in", "early departure after check-in")),
)

DEFAULT_FLAG_LABELS = (
    ("slack", "Slack"),
    ("refund queue", "Refund Queue"),
    ("create a ticket", "Create a Ticket"),
    ("supervisor", "Supervisor"),
)

DEFAULT_HEADER_TOKENS = ("instructions", "concern", "issue")

DEFAULT_HEADER_SCAN_LIMIT = 40


class RulesConfigError(ValueError):
    """Raised when a rules file exists but cannot be used."""


@dataclass(frozen=True)
class AliasRule:
    triggers: tuple[str, ...]
    expansions: tuple[str, ...]


@dataclass(frozen=True)
class MatrixRules:
    """
    Data tables driving query expansion, header detection and flag extraction.

    Attributes:
        aliases (tuple[AliasRule]): Trigger substrings and the variants they add
        flag_labels (tuple[tuple[str, str]]): Ordered (normalized header, display label)
        header_tokens (tuple[str]): Substrings that mark a header row
        header_scan_limit (int): How many leading rows may hold the header
    """

    aliases: tuple[AliasRule, ...] = field(
        default_factory=lambda: tuple(AliasRule(t, e) for t, e in DEFAULT_ALIASES)
    )
    flag_labels: tuple[tuple[str, str], ...] = DEFAULT_FLAG_LABELS
    header_tokens: tuple[str, ...] = DEFAULT_HEADER_TOKENS
    header_scan_limit: int = DEFAULT_HEADER_SCAN_LIMIT


DEFAULT_RULES = MatrixRules()


def load_rules(path: str | None = None) -> MatrixRules:
    """
    Load rule tables from JSON, falling back to the built-in defaults.

    Args:
        path (str, optional): JSON file; defaults to COMPLIANCE_RULES_FILE

    Returns:
        MatrixRules: Parsed rules, or DEFAULT_RULES when no file is configured
            or the file does not exist

    Raises:
        RulesConfigError: If the file is not valid JSON or has the wrong shape
    """
    rules_path = path or RULES_FILE
    if not rules_path or not Path(rules_path).exists():
        return DEFAULT_RULES

    try:
        with open(rules_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        raise RulesConfigError(f"Cannot read rules file {rules_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise RulesConfigError(f"Rules file {rules_path} must contain a JSON object")

    try:
        return _rules_from_dict(raw)
    except (TypeError, ValueError, KeyError) as exc:
        raise RulesConfigError(f"Invalid rules in {rules_path}: {exc}") from exc


def _rules_from_dict(raw: dict) -> MatrixRules:
    overrides = {}

    if "aliases" in raw:
        overrides["aliases"] = tuple(
            AliasRule(
                triggers=_str_tuple(entry["triggers"]),
                expansions=_str_tuple(entry.get("expansions", [])),
            )
            for entry in raw["aliases"]
        )

    if "flag_labels" in raw:
        labels = []
        for entry in raw["flag_labels"]:
            label, display = entry
            labels.append((str(label).strip().lower(), str(display)))
        overrides["flag_labels"] = tuple(labels)

    if "header_tokens" in raw:
        overrides["header_tokens"] = _str_tuple(raw["header_tokens"])

    if "header_scan_limit" in raw:
        limit = int(raw["header_scan_limit"])
        if limit < 1:
            raise ValueError("header_scan_limit must be at least 1")
        overrides["header_scan_limit"] = limit

    return MatrixRules(**overrides)


def _str_tuple(values) -> tuple[str, ...]:
    if isinstance(values, str):
        raise TypeError(f"expected a list of strings, got {values!r}")
    return tuple(str(v) for v in values if str(v).strip())
