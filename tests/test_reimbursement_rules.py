"""Tests for the reimbursement workflow rules (no database)."""
from datetime import datetime
from types import SimpleNamespace

import pytest

from portal.models.reimbursement import ReimbursementStatus
from portal.services import reimbursement_rules as rules
from portal.services.reimbursement_rules import Action


class TestTransitions:
    @pytest.mark.parametrize(
        "current, action, expected",
        [
            (ReimbursementStatus.PENDING, Action.START_REVIEW, ReimbursementStatus.IN_REVIEW),
            (ReimbursementStatus.PENDING, Action.APPROVE, ReimbursementStatus.APPROVED),
            (ReimbursementStatus.IN_REVIEW, Action.REJECT, ReimbursementStatus.REJECTED),
            (ReimbursementStatus.IN_REVIEW, Action.REQUEST_MORE_INFO, ReimbursementStatus.MORE_INFO_NEEDED),
            (ReimbursementStatus.MORE_INFO_NEEDED, Action.RESUBMIT, ReimbursementStatus.PENDING),
            (ReimbursementStatus.REJECTED, Action.RESUBMIT, ReimbursementStatus.PENDING),
        ],
    )
    def test_allowed(self, current, action, expected):
        assert rules.next_status(current, action) == expected

    @pytest.mark.parametrize(
        "current, action",
        [
            (ReimbursementStatus.APPROVED, Action.REJECT),
            (ReimbursementStatus.APPROVED, Action.RESUBMIT),
            (ReimbursementStatus.IN_REVIEW, Action.START_REVIEW),
            (ReimbursementStatus.IN_REVIEW, Action.RESUBMIT),
            (ReimbursementStatus.REJECTED, Action.APPROVE),
        ],
    )
    def test_refused(self, current, action):
        with pytest.raises(ValueError, match="Allowed from"):
            rules.next_status(current, action)

    def test_accepts_raw_status_value(self):
        assert rules.next_status("pending", Action.START_REVIEW) == ReimbursementStatus.IN_REVIEW


class TestAmounts:
    @pytest.mark.parametrize("value", [-1, "-0.01", "abc", None, "", float("nan"), float("inf"), True])
    def test_invalid_approved_amount(self, value):
        with pytest.raises(ValueError, match="The approved amount is not valid."):
            rules.validate_approved_amount(value)

    @pytest.mark.parametrize("value, expected", [(0, 0.0), ("150.5", 150.5), (42, 42.0)])
    def test_valid_approved_amount(self, value, expected):
        assert rules.validate_approved_amount(value) == expected

    @pytest.mark.parametrize("value", [0, -5, "x", None])
    def test_invalid_requested_amount(self, value):
        with pytest.raises(ValueError, match="greater than zero"):
            rules.validate_requested_amount(value)


class TestRejectionComments:
    def test_no_reason_is_blocked(self):
        with pytest.raises(ValueError, match="At least one reason must be selected."):
            rules.build_rejection_comments([], {})

    def test_unknown_reason(self):
        with pytest.raises(ValueError, match="Unknown rejection reason: bogus"):
            rules.build_rejection_comments(["bogus"])

    def test_required_comment_missing(self):
        with pytest.raises(ValueError) as exc:
            rules.build_rejection_comments(["illegible_document"], {"illegible_document": "   "})
        assert str(exc.value) == 'Add a comment for: "Illegible document(s)"'

    def test_builds_lines_in_selection_order(self):
        tags, text = rules.build_rejection_comments(
            ["out_of_coverage", "missing_document", "out_of_coverage"],
            {"missing_document": " Medical report "},
        )
        assert tags == ["out_of_coverage", "missing_document"]
        assert text == "Service/product out of coverage\nMissing document(s): Medical report"

    def test_optional_reason_keeps_comment(self):
        _, text = rules.build_rejection_comments(["policy_not_active"], {"policy_not_active": "Lapsed in May"})
        assert text == "Policy not active on the service date: Lapsed in May"

    def test_parse_recovers_comments(self):
        text = "Missing document(s): Medical report\nOther reason: Call us: ext 12\nService/product out of coverage"
        assert rules.parse_rejection_comments(text) == {
            "missing_document": "Medical report",
            "other_reason": "Call us: ext 12",
        }

    def test_parse_empty(self):
        assert rules.parse_rejection_comments(None) == {}


def test_missing_required_documents_follows_sort_order():
    required = [
        SimpleNamespace(document_name="Report", is_required=True, sort_order=2),
        SimpleNamespace(document_name="Invoice", is_required=True, sort_order=1),
        SimpleNamespace(document_name="Prescription", is_required=False, sort_order=0),
    ]
    assert rules.missing_required_documents(required, []) == ["Invoice", "Report"]
    assert rules.missing_required_documents(required, ["Invoice", "Report"]) == []



def test_unknown_documents_keeps_upload_order():
    required = [
        SimpleNamespace(document_name="Invoice", is_required=True, sort_order=1),
        SimpleNamespace(document_name="Prescription", is_required=False, sort_order=2),
    ]
    assert rules.unknown_documents(required, ["Prescription", "Invoice"]) == []
    assert rules.unknown_documents(required, ["Selfie", "Invoice", "invoice"]) == ["Selfie", "invoice"]

def test_decision_note_and_append():
    note = rules.decision_note(ReimbursementStatus.APPROVED, "admin@example.com", datetime(2024, 3, 5, 9, 7))
    assert note == "Approved by admin@example.com on 05/03/2024 09:07."
    assert rules.append_note(None, note) == note
    assert rules.append_note("first", "second") == "first\nsecond"


def test_sanitize_file_name():
    assert rules.sanitize_file_name("factura médica (1).pdf") == "factura_m_dica__1_.pdf"
