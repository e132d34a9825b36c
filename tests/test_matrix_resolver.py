"""
Matrix Resolver Tests
=====================

Tests:
- Normalization, absent values and Yes/No flags
- Alias expansion
- Header detection and header maps
- Tiered scoring
- Answer extraction with routing flags
- Search: tie-breaks, skipped rows, malformed input
"""

import pytest

from matrix_resolver import (
    MatchCandidate,
    MatrixResolver,
    Row,
    build_header_map,
    detect_header_row,
    expand_variants,
    extract_answer,
    is_absent,
    normalize,
    normalize_yes_no,
    score,
    search,
)
from matrix_rules import AliasRule, MatrixRules


class TestNormalize:

    def test_lowercases_strips_punctuation_and_collapses_spaces(self):
        assert normalize("  Guest   WAS  Double-Charged!! ") == "guest was doublecharged"

    def test_none_and_empty(self):
        assert normalize(None) == ""
        assert normalize("") == ""
        assert normalize("   ") == ""

    def test_non_strings_are_coerced(self):
        assert normalize(42) == "42"
        assert normalize(1.5) == "15"

    def test_keeps_unicode_letters(self):
        assert normalize("Café  Niño") == "café niño"

    def test_underscore_is_punctuation(self):
        assert normalize("refund_queue") == "refundqueue"

    def test_na_variants(self):
        assert normalize("N/A") == "na"
        assert normalize("n / a") == "n a"

    def test_drops_non_decimal_numerals_and_symbols(self):
        assert normalize("½ off") == "off"
        assert normalize("Room 2² €40") == "room 2 40"
        assert normalize("Ⅻ Suite") == "suite"


class TestAbsentAndYesNo:

    @pytest.mark.parametrize("value", [None, "", "  ", "No", "n", "NONE", "N/A", "n / a", "0", "False"])
    def test_absent_values(self, value):
        assert is_absent(value)

    @pytest.mark.parametrize("value", ["Yes", "Call the hotel", "#billing", "1"])
    def test_present_values(self, value):
        assert not is_absent(value)

    def test_yes_forms(self):
        for value in ("y", "YES", " true ", "1"):
            assert normalize_yes_no(value) == "Yes"

    def test_no_forms(self):
        for value in ("N", "no", "FALSE", "0"):
            assert normalize_yes_no(value) == "No"

    def test_free_text_is_kept_trimmed(self):
        assert normalize_yes_no("  #billing-escalations ") == "#billing-escalations"
        assert normalize_yes_no("Maybe") == "Maybe"


class TestExpandVariants:

    def test_always_contains_input(self):
        assert expand_variants("hotel closed on arrival") == {"hotel closed on arrival"}

    def test_billing_aliases(self):
        variants = expand_variants("guest was charged twice")
        assert {"guest was charged twice", "double charged", "charged twice",
                "double charge", "duplicate charge"} <= variants

    def test_early_departure_aliases_are_normalized(self):
        variants = expand_variants("early departure")
        assert "early departure after check in" in variants
        assert "early departure after checkin" in variants
        assert "early departure after check-in" not in variants

    def test_empty_input_gives_empty_set(self):
        assert expand_variants("") == set()

    def test_custom_alias_table(self):
        rules = MatrixRules(aliases=(AliasRule(("no show",), ("guest did not arrive",)),))
        assert expand_variants("no show fee", rules) == {"no show fee", "guest did not arrive"}
        assert expand_variants("charged twice", rules) == {"charged twice"}


class TestHeaderDetection:

    def test_header_after_banner_rows(self):
        rows = [["SERVICE MATRIX 2026"], [], ["#", "Concern", "Instructions"], ["1", "a", "b"]]
        assert detect_header_row(rows) == 2

    def test_issue_token(self):
        assert detect_header_row([["Issue", "Steps"]]) == 0

    def test_header_beyond_scan_window(self):
        rows = [["x", "y"]] * 40 + [["#", "Concern", "Instructions"]]
        assert detect_header_row(rows) is None

    def test_header_on_last_row_of_window(self):
        rows = [["x", "y"]] * 39 + [["#", "Concern", "Instructions"]]
        assert detect_header_row(rows) == 39

    def test_skips_malformed_rows(self):
        assert detect_header_row(["banner", None, ["Concern"]]) == 2

    def test_not_a_sheet(self):
        assert detect_header_row(None) is None

    def test_header_map_first_label_wins(self):
        header_map = build_header_map(["#", "Concern", "Slack", "slack!", "Refund  Queue"])
        assert header_map == {"concern": 1, "slack": 2, "refund queue": 4}

    def test_header_map_absent(self):
        assert build_header_map(None) == {}


class TestScore:

    def test_exact(self):
        assert score("guest was double charged", "guest was double charged") == 100

    def test_substring_either_direction(self):
        assert score("guest was double charged", "double charged") == 85
        assert score("noise", "noise complaint at night") == 85

    def test_overlap_short_query(self):
        assert score("guest was double charged", "refund guest") == 55
        assert score("guest was double charged", "charged guest") == 65

    def test_overlap_floor_for_longer_queries(self):
        assert score("guest was double charged", "guest needs help") == 0

    def test_repeated_cell_tokens_count_once(self):
        assert score("room room room", "room key card") == 0

    def test_overlap_capped_below_substring(self):
        assert score("guest charged twice for the room", "room the for twice charged guest") == 80

    def test_empty_inputs(self):
        assert score("", "anything") == 0
        assert score("anything", "") == 0

    @pytest.mark.parametrize("query", [
        "a", "guest", "double charged guest refund now", "zzz", "guest was double charged",
    ])
    def test_range(self, query):
        value = score("guest was double charged", query)
        assert value == 0 or 45 <= value <= 100


class TestExtractAnswer:

    HEADER_MAP = {"concern": 1, "instructions": 2, "slack": 3, "refund queue": 4,
                  "create a ticket": 5, "supervisor": 6}

    def test_remedy_with_flags(self):
        row = ["2", "Duplicate charge", "Verify both charges.", "#billing", "Yes", "No", ""]
        assert extract_answer(row, self.HEADER_MAP) == (
            "Verify both charges.\n\nSlack: #billing\nRefund Queue: Yes"
        )

    def test_remedy_is_verbatim(self):
        row = ["1", "x", "  Call the HOTEL, then log it!  "]
        assert extract_answer(row, self.HEADER_MAP) == "Call the HOTEL, then log it!"

    def test_flags_only(self):
        row = ["4", "Hotel closed", "N/A", "", "", "", "Y"]
        assert extract_answer(row, self.HEADER_MAP) == "Supervisor: Yes"

    def test_nothing_actionable(self):
        row = ["3", "Change dates", "N/A", "No", "no", "0", "false"]
        assert extract_answer(row, self.HEADER_MAP) is None

    def test_flags_skipped_without_header(self):
        row = ["1", "x", "Remedy", "Yes", "Yes"]
        assert extract_answer(row, {}) == "Remedy"

    def test_short_row(self):
        assert extract_answer(["only concern"], self.HEADER_MAP) is None

    def test_not_a_row(self):
        assert extract_answer("text", self.HEADER_MAP) is None


class TestRow:

    def test_concern_column_convention(self):
        assert Row.wrap(["1", "Concern text", "Remedy"]).concern_cell == "Concern text"
        assert Row.wrap(["Solo"]).concern_cell == "Solo"
        assert Row.wrap(["Solo"]).concern_index == 0

    def test_missing_cells_are_empty(self):
        row = Row.wrap(["1", "Concern"])
        assert row.remedy_cell == ""
        assert row.cell(9) == ""

    def test_numbers_and_none(self):
        row = Row.wrap([None, 7, None])
        assert row.concern_cell == "7"
        assert row.cell(0) == ""

    def test_wrap_rejects_non_rows(self):
        assert Row.wrap("abc") is None
        assert Row.wrap(None) is None


class TestSearch:

    def test_double_charge_example(self, billing_matrix):
        candidate = search(billing_matrix, "I charged the guest twice by mistake")

        assert candidate is not None
        assert candidate.tab_name == "Matrix"
        assert candidate.row_index == 1
        assert candidate.column_index == 1
        assert candidate.score == 65
        assert candidate.matched_text == "Guest was double charged"
        assert candidate.answer_text == "Issue refund via Billing Queue\n\nSlack: Yes"

    def test_below_threshold_candidate_still_returned(self, billing_matrix):
        candidate = search(billing_matrix, "I charged the guest twice by mistake")
        assert candidate.score < 70

    def test_exact_match_scores_100(self, service_matrix):
        candidate = search(service_matrix, "Hotel closed on arrival")
        assert candidate.score == 100
        assert candidate.row_index == 6
        assert candidate.answer_text == "Relocate the guest and notify a supervisor.\n\nSupervisor: Yes"

    def test_alias_match(self, service_matrix):
        candidate = search(service_matrix, "Guest was charged twice?")
        assert candidate.score == 100
        assert candidate.matched_text == "Duplicate charge"
        assert candidate.answer_text == (
            "Verify both charges, then submit a refund request.\n\n"
            "Slack: #billing-escalations\nRefund Queue: Yes"
        )

    def test_hyphenated_alias(self, service_matrix):
        candidate = search(service_matrix, "early departure")
        assert candidate.score == 100
        assert candidate.row_index == 3
        assert candidate.answer_text == "Contact the hotel to request a waiver.\n\nCreate a Ticket: Yes"

    def test_tie_goes_to_first_tab(self, service_matrix):
        candidate = search(service_matrix, "noise complaint")
        assert candidate.score == 100
        assert candidate.tab_name == "Voice Matrix"
        assert candidate.row_index == 8

    def test_tie_goes_to_earlier_row(self):
        document = {"T": [
            ["1", "Lost key card", "First remedy"],
            ["2", "Lost key card", "Second remedy"],
        ]}
        assert search(document, "lost key card").answer_text == "First remedy"

    def test_higher_score_later_wins(self):
        document = {"T": [
            ["1", "Lost key card at the front desk", "Partial"],
            ["2", "Lost key card", "Exact"],
        ]}
        candidate = search(document, "lost key card")
        assert candidate.answer_text == "Exact"
        assert candidate.score == 100

    def test_row_without_answer_is_skipped(self, service_matrix):
        assert search(service_matrix, "Guest wants to change dates") is None

    def test_overlap_floor_gives_no_candidate(self, billing_matrix):
        assert search(billing_matrix, "guest needs help") is None

    def test_na_concern_is_searchable(self):
        document = {"T": [["1", "N/A", "Call the hotel"]]}
        candidate = search(document, "n/a")
        assert candidate.score == 100
        assert candidate.answer_text == "Call the hotel"

    def test_empty_question_does_not_scan(self):
        class ExplodingDocument(dict):
            def items(self):
                raise AssertionError("document scanned")

        document = ExplodingDocument(T=[["1", "x", "y"]])
        assert search(document, "") is None
        assert search(document, "   ") is None
        assert search(document, "?!") is None
        assert search(document, None) is None

    def test_malformed_input_is_tolerated(self):
        document = {
            "Broken": "not rows",
            "Mixed": [None, 5, "text", {"a": 1}, ["1", "Noise complaint", "Apologize"]],
        }
        candidate = search(document, "noise complaint")
        assert candidate.tab_name == "Mixed"
        assert candidate.row_index == 4

    def test_not_a_document(self):
        assert search(None, "noise complaint") is None
        assert search(["rows"], "noise complaint") is None

    def test_single_column_rows(self):
        document = {"T": [["Noise complaint"]]}
        # Single-cell rows have no remedy column, so nothing to serve
        assert search(document, "noise complaint") is None

    def test_idempotent(self, service_matrix):
        first = search(service_matrix, "I charged the guest twice by mistake")
        second = search(service_matrix, "I charged the guest twice by mistake")
        assert first == second

    def test_document_not_mutated(self, billing_matrix):
        before = [list(row) for row in billing_matrix["Matrix"]]
        search(billing_matrix, "guest was double charged")
        assert billing_matrix["Matrix"] == before


class TestMatchCandidate:

    def test_to_dict_and_row_number(self):
        candidate = MatchCandidate(85, "Voice Matrix", 4, 1, "Duplicate charge", "Verify")
        assert candidate.row_number == 5
        assert candidate.to_dict() == {
            "score": 85,
            "tabName": "Voice Matrix",
            "rowIndex": 4,
            "columnIndex": 1,
            "matchedText": "Duplicate charge",
            "answerText": "Verify",
        }


class TestMatrixResolver:

    def test_uses_bound_rules(self):
        rules = MatrixRules(aliases=(AliasRule(("wifi",), ("internet outage",)),))
        resolver = MatrixResolver(rules)
        document = {"T": [["1", "Internet outage", "Ask the hotel to reset the router"]]}

        assert resolver.search(document, "wifi down").score == 100
        assert MatrixResolver().search(document, "wifi down") is None
