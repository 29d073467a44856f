"""Approval route resolution.

Given an application, pick the department's route, the active step and the
concrete user who must act on it. All functions accept a sync SQLAlchemy
Session.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.application import Application
from app.models.approval_route import ApprovalRoute, ApprovalStep, ApproverType
from app.models.department import Department
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class ResolvedStep:
    """A route step together with the user who must act on it."""

    step: ApprovalStep
    approver_id: uuid.UUID

    @property
    def step_number(self) -> int:
        return self.step.step_number


# ─── Route selection ───

def resolve_route(db: Session, department_id: uuid.UUID) -> ApprovalRoute | None:
    """Return the department's active route, or None.

    When several routes are active the most recently created one wins.
    """
    routes = list(
        db.execute(
            select(ApprovalRoute)
            .where(
                ApprovalRoute.department_id == department_id,
                ApprovalRoute.is_active.is_(True),
            )
            .order_by(ApprovalRoute.created_at.desc(), ApprovalRoute.id.desc())
        ).scalars().all()
    )
    if not routes:
        return None
    if len(routes) > 1:
        logger.warning(
            "resolve_route: department %s has %d active routes; using most recent %s",
            department_id, len(routes), routes[0].id,
        )
    return routes[0]


def load_route(db: Session, route_id: uuid.UUID | None) -> ApprovalRoute | None:
    if route_id is None:
        return None
    return db.execute(
        select(ApprovalRoute).where(ApprovalRoute.id == route_id)
    ).scalars().first()


# ─── Step applicability ───

def step_applies(step: ApprovalStep, amount: Decimal | float | int | None) -> bool:
    """True if ``amount`` falls within the step's inclusive amount range.

    A missing bound is unbounded; an unknown amount is treated as zero.
    """
    value = Decimal(str(amount)) if amount is not None else Decimal("0")
    if step.min_amount is not None and value < Decimal(str(step.min_amount)):
        return False
    if step.max_amount is not None and value > Decimal(str(step.max_amount)):
        return False
    return True


def applicable_steps(
    route: ApprovalRoute,
    amount: Decimal | float | int | None,
    after_step: int | None = None,
) -> list[ApprovalStep]:
    """Required steps that apply to ``amount``, ascending, after ``after_step``."""
    floor = after_step or 0
    return [
        step
        for step in sorted(route.steps, key=lambda s: s.step_number)
        if step.step_number > floor and step.is_required and step_applies(step, amount)
    ]


# ─── Approver resolution ───

def resolve_step_approver(db: Session, step: ApprovalStep, application: Application) -> uuid.UUID:
    """Resolve the concrete user id that must act on ``step``.

    Raises NotFoundError if no active user can be found.
    """
    if step.approver_type == ApproverType.user.value:
        if step.approver_id is None:
            raise NotFoundError(f"Step {step.step_number} has no approver assigned.")
        return step.approver_id

    if step.approver_type == ApproverType.role.value:
        base = select(User).where(
            User.role == step.role_name,
            User.is_active.is_(True),
        ).order_by(User.created_at.asc(), User.id.asc())
        user = db.execute(
            base.where(User.department_id == application.department_id)
        ).scalars().first()
        if user is None:
            user = db.execute(base).scalars().first()
        if user is None:
            raise NotFoundError(
                f"No active user with role '{step.role_name}' for step {step.step_number}."
            )
        return user.id

    if step.approver_type == ApproverType.department_head.value:
        department_id = step.department_id or application.department_id
        department = db.execute(
            select(Department).where(Department.id == department_id)
        ).scalars().first()
        if department is None or department.head_user_id is None:
            raise NotFoundError(
                f"Department {department_id} has no head for step {step.step_number}."
            )
        return department.head_user_id

    raise NotFoundError(f"Unknown approver type '{step.approver_type}' on step {step.step_number}.")


def next_step(
    db: Session,
    route: ApprovalRoute,
    application: Application,
    after_step: int | None = None,
) -> ResolvedStep | None:
    """The first applicable required step after ``after_step``, resolved; None when done."""
    steps = applicable_steps(route, application.total_amount, after_step)
    if not steps:
        return None
    step = steps[0]
    return ResolvedStep(step=step, approver_id=resolve_step_approver(db, step, application))


def find_step(route: ApprovalRoute | None, step_number: int | None) -> ApprovalStep | None:
    if route is None or step_number is None:
        return None
    for step in route.steps:
        if step.step_number == step_number:
            return step
    return None
