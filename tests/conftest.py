"""
Compliance Assist Test Configuration
====================================

Fixtures:
- Sample Service Matrix document (title banner, header row, concern rows)
- Document library stub holding a fixed snapshot
"""

import os
import sys

import pytest

# Add repository root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


MATRIX_HEADER = ["#", "Concern", "Instructions", "Slack", "Refund Queue", "Create a Ticket", "Supervisor"]


@pytest.fixture
def billing_matrix():
    """Two-row matrix from the double-charge example."""
    return {
        "Matrix": [
            ["#", "Concern", "Instructions", "Slack", "Refund Queue"],
            ["1", "Guest was double charged", "Issue refund via Billing Queue", "Yes", "No"],
        ]
    }


@pytest.fixture
def service_matrix():
    """Multi-tab matrix with a banner row ahead of the header."""
    return {
        "Voice Matrix": [
            ["SERVICE MATRIX 2026"],
            [],
            MATRIX_HEADER,
            ["1", "Early departure after check-in", "Contact the hotel to request a waiver.", "", "N/A", "Yes", "No"],
            ["2", "Duplicate charge", "Verify both charges, then submit a refund request.", "#billing-escalations", "Yes", "No", ""],
            ["3", "Guest wants to change dates", "N/A", "No", "No", "No", "No"],
            ["4", "Hotel closed on arrival", "Relocate the guest and notify a supervisor.", "", "", "", "Y"],
            "not a row",
            ["5", "Noise complaint", "Apologize and ask the hotel to move the guest."],
        ],
        "Ticket Matrix": [
            ["#", "Issue", "Instructions", "Create a Ticket"],
            ["x", "Noise complaint", "Open a hotel-relations ticket.", "Yes"],
        ],
    }


class StaticLibrary:
    """Document library stand-in with a fixed snapshot."""

    def __init__(self, documents):
        self.documents = documents
        self.reloads = 0

    def reload(self):
        self.reloads += 1
        self.documents = dict(self.documents)
        return self.documents


@pytest.fixture
def library(service_matrix):
    return StaticLibrary({
        "matrix": service_matrix,
        "qaVoice": {"Rubric": [["Greeting", "Use the guest name"]]},
        "trainingGuide": {"refunds": "Never promise a refund."},
    })
