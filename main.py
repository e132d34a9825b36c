"""
Compliance Assist - Call Center Procedure Lookup

Command line front end for the compliance assistant. Agents type a guest
situation and get back the compliant procedure: straight from the Service
Matrix when a concern row matches confidently, otherwise from the generative
fallback grounded on the reference documents.

Usage:
    python main.py "guest was double charged"
    python main.py --docs qaVoice,trainingGuide --json "early departure"
    python main.py                      # interactive mode

Interactive commands:
    :reload   reload reference documents
    :stats    show resolution counters
    :quit     exit

No generative provider is wired in by default; questions without a direct
matrix answer are echoed in local mode.

Author: Quinn Evans
"""

from __future__ import annotations

import argparse
import json
import sys

from exception_logger import exception_logger
from matrix_resolver import MatrixResolver
from matrix_rules import load_rules
from response_manager import ResponseManager
from workbook_loader import DOCS_DIR, REFERENCE_DOCUMENTS, DocumentLibrary

SELECTABLE_DOCS = tuple(spec.key for spec in REFERENCE_DOCUMENTS if spec.key != "matrix")


class ComplianceAssistApp:
    """
    Wires the document library, matrix resolver and response manager together.

    Attributes:
        library (DocumentLibrary): Loaded reference documents
        responder (ResponseManager): Question routing and fallback handling
        selection (dict): Optional documents included in fallback prompts
        as_json (bool): Print full JSON responses instead of answer text
    """

    def __init__(self, docs_dir=None, rules_file=None, selection=None, fallback=None,
                 as_json=False, error_log=None):
        print("App initializing")
        if error_log:
            exception_logger.set_log_file(error_log)

        self.library = DocumentLibrary(docs_dir)
        self.responder = ResponseManager(
            library=self.library,
            fallback=fallback,
            resolver=MatrixResolver(load_rules(rules_file)),
        )
        self.selection = selection or {}
        self.as_json = as_json

        print("Loading documents...")
        self.library.load()
        print("App initialized")

    def ask(self, question: str) -> bool:
        response = self.responder.answer(question, self.selection)
        if self.as_json:
            print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
        elif response.ok:
            print(response.answer)
        else:
            print(f"Error ({response.status}): {response.error}", file=sys.stderr)
        return response.ok

    def run(self):
        """Interactive loop until :quit or end of input."""
        print("Type a guest situation (:reload, :stats, :quit)")
        while True:
            try:
                line = input("> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break

            if not line:
                continue
            if line == ":quit":
                break
            if line == ":reload":
                self.responder.reload_documents()
                continue
            if line == ":stats":
                print(json.dumps({**self.responder.stats.snapshot(), **self.library.status()}, indent=2))
                continue
            self.ask(line)

        self.responder.stop()


def parse_selection(value: str) -> dict:
    """Turn "qaVoice,trainingGuide" into a document selection."""
    selection = {}
    for key in (part.strip() for part in (value or "").split(",")):
        if not key:
            continue
        if key not in SELECTABLE_DOCS:
            raise argparse.ArgumentTypeError(
                f"unknown document '{key}' (choose from {', '.join(SELECTABLE_DOCS)})"
            )
        selection[key] = True
    return selection


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Call center compliance procedure lookup")
    parser.add_argument("question", nargs="*", help="Guest situation; omit for interactive mode")
    parser.add_argument("--docs-dir", default=DOCS_DIR, help="Directory holding the reference documents")
    parser.add_argument("--docs", type=parse_selection, default={},
                        help=f"Extra documents for fallback context: {','.join(SELECTABLE_DOCS)}")
    parser.add_argument("--rules", default=None, help="JSON file overriding alias and flag tables")
    parser.add_argument("--error-log", default=None, help="Write errors to this file")
    parser.add_argument("--json", action="store_true", help="Print the full JSON response")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    app = ComplianceAssistApp(
        docs_dir=args.docs_dir,
        rules_file=args.rules,
        selection=args.docs,
        as_json=args.json,
        error_log=args.error_log,
    )

    if args.question:
        ok = app.ask(" ".join(args.question))
        app.responder.stop()
        return 0 if ok else 1

    app.run()
    return 0


# Application entry point
if __name__ == "__main__":
    sys.exit(main())
