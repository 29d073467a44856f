"""Application lifecycle state machine.

Pure functions over status/action strings — no database access. The action
processor consults this module before touching any row, and the audit
service uses it to check that a recorded history is a legal walk.
"""
from app.core.exceptions import InvalidTransitionError, ValidationError
from app.models.application import ApplicationStatus as S
from app.models.approval_log import ApprovalAction as A

# ─── Status groups ───

AWAITING_DECISION = frozenset({S.pending.value, S.submitted.value})
IN_FLIGHT = AWAITING_DECISION | {S.on_hold.value}
TERMINAL = frozenset({S.approved.value, S.rejected.value})
APPLICANT_EDITABLE = frozenset({S.draft.value, S.returned.value})

ALL_STATUSES = frozenset(s.value for s in S)

# Actions an approver takes on an in-flight application.
DECISION_ACTIONS = frozenset({A.approve.value, A.reject.value, A.return_.value, A.hold.value})
# Actions the applicant takes.
SUBMISSION_ACTIONS = frozenset({A.submit.value, A.resubmit.value})
ALL_ACTIONS = frozenset(a.value for a in A)


# ─── Transition table ───
# (current status, action) -> set of statuses the action may lead to.
# approve has two outcomes: pending when later steps remain, approved otherwise.

TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {}

for _awaiting in AWAITING_DECISION:
    TRANSITIONS[(_awaiting, A.approve.value)] = frozenset({S.pending.value, S.approved.value})
    TRANSITIONS[(_awaiting, A.reject.value)] = frozenset({S.rejected.value})
    TRANSITIONS[(_awaiting, A.return_.value)] = frozenset({S.returned.value})
    TRANSITIONS[(_awaiting, A.hold.value)] = frozenset({S.on_hold.value})

TRANSITIONS[(S.on_hold.value, A.resume.value)] = frozenset({S.pending.value})
TRANSITIONS[(S.draft.value, A.submit.value)] = frozenset({S.pending.value, S.approved.value})
TRANSITIONS[(S.returned.value, A.resubmit.value)] = frozenset({S.pending.value, S.approved.value})

# Status reached by a single-outcome action.
_DIRECT_TARGET = {
    A.reject.value: S.rejected.value,
    A.return_.value: S.returned.value,
    A.hold.value: S.on_hold.value,
    A.resume.value: S.pending.value,
}


def validate_action(action: str) -> str:
    """Return ``action`` if it names a known action, else raise ValidationError."""
    if action not in ALL_ACTIONS:
        raise ValidationError(
            f"Invalid action '{action}'. Must be one of: {', '.join(sorted(ALL_ACTIONS))}."
        )
    return action


def is_terminal(status: str) -> bool:
    return status in TERMINAL


def can_transition(current: str, action: str) -> bool:
    return (current, action) in TRANSITIONS


def assert_transition(current: str, action: str) -> None:
    """Raise InvalidTransitionError unless ``action`` is legal from ``current``."""
    if can_transition(current, action):
        return
    if is_terminal(current):
        detail = f"application is in terminal status '{current}'"
    else:
        detail = f"action '{action}' is not allowed from status '{current}'"
    raise InvalidTransitionError(
        f"Cannot {action}: {detail}.", current_status=current, action=action
    )


def next_status(current: str, action: str, has_next_step: bool = False) -> str:
    """Compute the status an action leads to.

    ``has_next_step`` only matters for approve/submit/resubmit: when another
    applicable route step remains the application stays (or becomes) pending.
    """
    assert_transition(current, action)
    target = _DIRECT_TARGET.get(action)
    if target is not None:
        return target
    return S.pending.value if has_next_step else S.approved.value


def is_legal_step(status_before: str | None, action: str, status_after: str) -> bool:
    """True if a recorded (before, action, after) triple is a legal transition."""
    if status_before is None:
        return False
    return status_after in TRANSITIONS.get((status_before, action), frozenset())


def approver_required(status: str) -> bool:
    """Statuses in which current_approver_id must be set."""
    return status in AWAITING_DECISION
