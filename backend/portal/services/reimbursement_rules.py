"""
Rules of the reimbursement workflow: which action is allowed from which
status, how reviewer input is validated and how rejection comments are
folded into the single text column of the request.

Nothing here touches the database so the services and the endpoints can
share it.
"""
import enum
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from portal.models.reimbursement import ReimbursementStatus


class RejectionReason(str, enum.Enum):
    ILLEGIBLE_DOCUMENT = "illegible_document"
    MISSING_DOCUMENT = "missing_document"
    INCONSISTENT_DATA = "inconsistent_data"
    OUT_OF_COVERAGE = "out_of_coverage"
    POLICY_NOT_ACTIVE = "policy_not_active"
    OTHER_REASON = "other_reason"


class ReasonConfig(NamedTuple):
    label: str
    requires_comment: bool
    placeholder: Optional[str] = None


REJECTION_REASONS: Dict[RejectionReason, ReasonConfig] = {
    RejectionReason.ILLEGIBLE_DOCUMENT: ReasonConfig(
        "Illegible document(s)", True, "Specify which document(s) cannot be read."
    ),
    RejectionReason.MISSING_DOCUMENT: ReasonConfig(
        "Missing document(s)", True, "Specify which document(s) are missing."
    ),
    RejectionReason.INCONSISTENT_DATA: ReasonConfig(
        "Inconsistent information", True, "Describe the inconsistency (dates, names)."
    ),
    RejectionReason.OUT_OF_COVERAGE: ReasonConfig("Service/product out of coverage", False),
    RejectionReason.POLICY_NOT_ACTIVE: ReasonConfig("Policy not active on the service date", False),
    RejectionReason.OTHER_REASON: ReasonConfig(
        "Other reason", True, "Describe the specific reason for the rejection."
    ),
}


class Action(str, enum.Enum):
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_MORE_INFO = "request_more_info"
    RESUBMIT = "resubmit"


_REVIEWABLE = (ReimbursementStatus.PENDING, ReimbursementStatus.IN_REVIEW)

# action -> (statuses it may start from, status it leads to)
TRANSITIONS = {
    Action.START_REVIEW: ((ReimbursementStatus.PENDING,), ReimbursementStatus.IN_REVIEW),
    Action.APPROVE: (_REVIEWABLE, ReimbursementStatus.APPROVED),
    Action.REJECT: (_REVIEWABLE, ReimbursementStatus.REJECTED),
    Action.REQUEST_MORE_INFO: (_REVIEWABLE, ReimbursementStatus.MORE_INFO_NEEDED),
    Action.RESUBMIT: (
        (
            ReimbursementStatus.PENDING,
            ReimbursementStatus.MORE_INFO_NEEDED,
            ReimbursementStatus.REJECTED,
        ),
        ReimbursementStatus.PENDING,
    ),
}

PENDING_GROUP = (
    ReimbursementStatus.PENDING,
    ReimbursementStatus.IN_REVIEW,
    ReimbursementStatus.MORE_INFO_NEEDED,
)

NOTE_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M"


def next_status(current: ReimbursementStatus, action: Action) -> ReimbursementStatus:
    """Return the status ``action`` leads to, or raise ValueError if not allowed."""
    sources, target = TRANSITIONS[action]
    current = ReimbursementStatus(current)
    if current not in sources:
        allowed = ", ".join(s.value for s in sources)
        raise ValueError(
            f"Cannot {action.value.replace('_', ' ')} a request in status {current.value}. "
            f"Allowed from: {allowed}."
        )
    return target


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def validate_approved_amount(value: Any) -> float:
    number = _to_number(value)
    if number is None or number < 0:
        raise ValueError("The approved amount is not valid.")
    return number


def validate_requested_amount(value: Any) -> float:
    number = _to_number(value)
    if number is None or number <= 0:
        raise ValueError("The requested amount is required and must be greater than zero.")
    return number


def build_rejection_comments(
    reasons: Iterable[str], comments: Optional[Dict[str, str]] = None
) -> Tuple[List[str], str]:
    """
    Validate the selected reasons and fold their comments into one text.

    Returns ``(reason_tags, text)``. Each selected reason contributes one
    ``"<label>: <comment>"`` line, or just ``"<label>"`` when no comment was
    given and none is required.
    """
    comments = comments or {}
    selected: List[RejectionReason] = []
    for raw in reasons:
        try:
            reason = RejectionReason(raw)
        except ValueError:
            raise ValueError(f"Unknown rejection reason: {raw}") from None
        if reason not in selected:
            selected.append(reason)

    if not selected:
        raise ValueError("At least one reason must be selected.")

    lines = []
    for reason in selected:
        config = REJECTION_REASONS[reason]
        comment = (comments.get(reason.value) or "").strip()
        if config.requires_comment and not comment:
            raise ValueError(f'Add a comment for: "{config.label}"')
        lines.append(f"{config.label}: {comment}" if comment else config.label)

    return [r.value for r in selected], "\n".join(lines).strip()


def parse_rejection_comments(text: Optional[str]) -> Dict[str, str]:
    """Recover per-reason comments from a stored rejection_comments text."""
    by_label = {config.label: reason for reason, config in REJECTION_REASONS.items()}
    parsed: Dict[str, str] = {}
    for line in (text or "").split("\n"):
        if not line.strip():
            continue
        parts = line.split(":")
        if len(parts) < 2:
            continue
        reason = by_label.get(parts[0].strip())
        if reason:
            parsed[reason.value] = ":".join(parts[1:]).strip()
    return parsed


def missing_required_documents(required: Iterable[Any], provided_names: Iterable[str]) -> List[str]:
    """Names of required documents (``is_required`` rows) not among ``provided_names``."""
    provided = set(provided_names)
    return [
        doc.document_name
        for doc in sorted(required, key=lambda d: d.sort_order)
        if doc.is_required and doc.document_name not in provided
    ]


def unknown_documents(required: Iterable[Any], provided_names: Iterable[str]) -> List[str]:
    """Provided names that are not on the product's document checklist, in the given order."""
    known = {doc.document_name for doc in required}
    return [name for name in provided_names if name not in known]


def decision_note(status: ReimbursementStatus, actor_email: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    verb = {
        ReimbursementStatus.APPROVED: "Approved",
        ReimbursementStatus.REJECTED: "Rejected",
        ReimbursementStatus.MORE_INFO_NEEDED: "More information requested",
        ReimbursementStatus.IN_REVIEW: "Review started",
    }[ReimbursementStatus(status)]
    return f"{verb} by {actor_email} on {when.strftime(NOTE_TIMESTAMP_FORMAT)}."


def append_note(existing: Optional[str], note: str) -> str:
    if not existing:
        return note
    return f"{existing}\n{note}"


_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)
