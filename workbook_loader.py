"""
Reference Document Loader

Reads the compliance reference documents from a local directory into memory:
the Service Matrix and QA rubric workbooks (one list of rows per tab) and the
JSON training guide. The loaded set is swapped in as a whole, so readers
always see either the previous or the new documents, never a mix.

Key Features:
- Tab names kept exactly as authored
- Every row kept (blank rows included) so row numbers match the workbook
- Cell values coerced to display strings, trailing blank cells dropped
- One failing document never blocks the others

Dependencies:
- openpyxl: Excel workbook parsing

Author: Quinn Evans
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time
from pathlib import Path
from typing import Dict, List, Optional

from openpyxl import load_workbook

from exception_logger import debug, log_exception


DOCS_DIR = os.getenv("COMPLIANCE_DOCS_DIR", "data")


class DocumentLoadError(Exception):
    """Raised when a reference document cannot be read."""


@dataclass(frozen=True)
class DocumentSpec:
    key: str
    filename: str
    name: str
    kind: str  # "excel" or "json"


REFERENCE_DOCUMENTS = (
    DocumentSpec("qaVoice", "qa-voice.xlsx", "QA Voice", "excel"),
    DocumentSpec("qaGroup", "qa-group.xlsx", "QA Groups", "excel"),
    DocumentSpec("matrix", "Service Matrix's 2026.xlsx", "Service Matrix", "excel"),
    DocumentSpec("trainingGuide", "hotelplanner_training_guide.json", "Training Guide", "json"),
)


def cell_text(value) -> str:
    """Render a workbook cell the way the sheet displays it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    return str(value)


def _trim_row(values) -> List[str]:
    cells = [cell_text(v) for v in values]
    while cells and not cells[-1].strip():
        cells.pop()
    return cells


def load_workbook_document(path) -> Dict[str, List[List[str]]]:
    """
    Parse every tab of an .xlsx workbook.

    Args:
        path (str | Path): Workbook file

    Returns:
        dict: Tab name -> list of rows, each row a list of cell strings

    Raises:
        DocumentLoadError: If the file is missing or is not a readable workbook
    """
    path = Path(path)
    if not path.exists():
        raise DocumentLoadError(f"Document not found: {path}")

    try:
        workbook = load_workbook(path, data_only=True)
    except Exception as exc:
        raise DocumentLoadError(f"Cannot open workbook {path}: {exc}") from exc

    try:
        result = {}
        for sheet in workbook.worksheets:
            rows = sheet.iter_rows(min_row=1, max_row=sheet.max_row, values_only=True)
            result[sheet.title] = [_trim_row(values) for values in rows]
    except Exception as exc:
        raise DocumentLoadError(f"Cannot read workbook {path}: {exc}") from exc
    finally:
        workbook.close()

    debug("workbook_loader", f"Parsed {path.name}: {len(result)} sheets")
    return result


def load_json_document(path):
    """
    Read a JSON reference document.

    Raises:
        DocumentLoadError: If the file is missing or is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise DocumentLoadError(f"Document not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise DocumentLoadError(f"Cannot read JSON document {path}: {exc}") from exc

    keys = len(data) if isinstance(data, dict) else 0
    debug("workbook_loader", f"Parsed {path.name}: JSON keys={keys}")
    return data


class DocumentLibrary:
    """
    In-memory set of reference documents loaded from a directory.

    Attributes:
        docs_dir (Path): Directory holding the reference files
        specs (tuple[DocumentSpec]): Documents to load
        last_load (datetime | None): When the current set was loaded
    """

    def __init__(self, docs_dir: str | None = None, specs=REFERENCE_DOCUMENTS):
        self.docs_dir = Path(docs_dir or DOCS_DIR)
        self.specs = tuple(specs)
        self.last_load: Optional[datetime] = None
        self._documents: dict = {}
        self._lock = threading.Lock()

    @property
    def documents(self) -> dict:
        """Current snapshot. Callers must treat it as read-only."""
        return self._documents

    def get(self, key: str):
        return self._documents.get(key)

    @property
    def matrix(self) -> dict:
        return self._documents.get("matrix") or {}

    def load(self, force: bool = False) -> dict:
        """Load documents unless a snapshot is already present."""
        if self._documents and not force:
            return self._documents
        return self.reload()

    def reload(self) -> dict:
        """
        Read every document again and swap in the new snapshot.

        Documents that fail to load are logged and left out of the new
        snapshot.

        Returns:
            dict: Document key -> parsed document
        """
        loaded = {}
        for spec in self.specs:
            path = self.docs_dir / spec.filename
            try:
                if spec.kind == "json":
                    loaded[spec.key] = load_json_document(path)
                else:
                    loaded[spec.key] = load_workbook_document(path)
            except DocumentLoadError as exc:
                log_exception(exc, module="workbook_loader", context=f"Failed to load {spec.name}")

        with self._lock:
            self._documents = loaded
            self.last_load = datetime.now()

        print(f"Document cache updated: {', '.join(loaded) or 'none'}")
        return loaded

    def status(self) -> dict:
        return {
            "documentsCached": list(self._documents),
            "lastLoad": self.last_load.isoformat() if self.last_load else None,
            "docsDir": str(self.docs_dir),
        }
