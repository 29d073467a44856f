"""Approval route configuration service.

Routes are edited by administrators. Steps are never diffed: an edit
deletes every step of the route and inserts the new list, inside the same
transaction as the route update so a failure cannot leave a route with zero
steps.

All functions accept a sync SQLAlchemy Session.
"""
import itertools
import logging
import uuid
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError, PersistenceError, ValidationError
from app.models.approval_route import ApprovalRoute, ApprovalStep, ApproverType
from app.schemas.approval_route import ApprovalStepIn

logger = logging.getLogger(__name__)

ROUTE_UPDATABLE_FIELDS = ("name", "description", "is_active")
STEP_EDITABLE_FIELDS = frozenset(ApprovalStepIn.model_fields) - {"step_number"}


# ─── Step validation ───

def _coerce_step(raw: ApprovalStepIn | dict, position: int) -> ApprovalStepIn:
    if isinstance(raw, ApprovalStepIn):
        step = raw
    else:
        try:
            step = ApprovalStepIn.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(f"Step {position}: {exc.errors()[0]['msg']}") from exc

    if step.approver_type not in {t.value for t in ApproverType}:
        raise ValidationError(f"Step {position}: unknown approver_type '{step.approver_type}'.")
    if step.approver_type == ApproverType.user.value and step.approver_id is None:
        raise ValidationError(f"Step {position}: approver_type 'user' requires approver_id.")
    if step.approver_type == ApproverType.role.value and not step.role_name:
        raise ValidationError(f"Step {position}: approver_type 'role' requires role_name.")
    if (
        step.min_amount is not None
        and step.max_amount is not None
        and step.min_amount > step.max_amount
    ):
        raise ValidationError(
            f"Step {position}: min_amount {step.min_amount} exceeds max_amount {step.max_amount}."
        )
    return step


def validate_steps(steps: Iterable[ApprovalStepIn | dict] | None) -> list[ApprovalStepIn]:
    """Validate step inputs; returns them in order. Caller-supplied step numbers are ignored."""
    return [_coerce_step(raw, index + 1) for index, raw in enumerate(steps or [])]


def _build_steps(route_id: uuid.UUID, steps: list[ApprovalStepIn]) -> list[ApprovalStep]:
    return [
        ApprovalStep(
            approval_route_id=route_id,
            step_number=index + 1,
            **step.model_dump(exclude={"step_number"}),
        )
        for index, step in enumerate(steps)
    ]


def _deactivate_other_routes(db: Session, department_id: uuid.UUID, keep_id: uuid.UUID) -> None:
    if not settings.ENFORCE_SINGLE_ACTIVE_ROUTE:
        return
    result = db.execute(
        update(ApprovalRoute)
        .where(
            ApprovalRoute.department_id == department_id,
            ApprovalRoute.is_active.is_(True),
            ApprovalRoute.id != keep_id,
        )
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount:
        logger.info(
            "Deactivated %d other active route(s) for department %s", result.rowcount, department_id
        )


# ─── Create / update / delete ───

def create_route(
    db: Session,
    name: str | None,
    department_id: uuid.UUID | None,
    steps: Iterable[ApprovalStepIn | dict] | None = None,
    description: str | None = None,
    is_active: bool = True,
    created_by: uuid.UUID | None = None,
) -> ApprovalRoute:
    """Create a route and its steps, numbering steps 1..N in the given order.

    Raises:
        ValidationError: name or department missing, or a malformed step.
        PersistenceError: the write failed; nothing was stored.
    """
    if not name or not str(name).strip():
        raise ValidationError("Route name is required.")
    if department_id is None:
        raise ValidationError("Route department_id is required.")
    step_inputs = validate_steps(steps)

    stage = "insert_route"
    try:
        route = ApprovalRoute(
            name=name.strip(),
            description=description,
            department_id=department_id,
            is_active=is_active,
            created_by=created_by,
        )
        db.add(route)
        db.flush()

        stage = "insert_steps"
        db.add_all(_build_steps(route.id, step_inputs))
        db.flush()

        if is_active:
            stage = "deactivate_routes"
            _deactivate_other_routes(db, department_id, route.id)

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("create_route failed at %s", stage)
        raise PersistenceError(f"Failed to create approval route ({stage}).", stage=stage) from exc

    db.refresh(route)
    logger.info("Created approval route %s (%d steps) for department %s", route.id, len(step_inputs), department_id)
    return route


def update_route(
    db: Session,
    route_id: uuid.UUID,
    fields: dict[str, Any] | None = None,
    steps: Iterable[ApprovalStepIn | dict] | None = None,
) -> ApprovalRoute:
    """Update route fields and, when ``steps`` is given, replace all steps.

    The field update, step delete and step insert run in one transaction.

    Raises:
        NotFoundError: route does not exist.
        ValidationError: unknown field or malformed step.
        PersistenceError: a write failed; ``stage`` names which one. Nothing was applied.
    """
    fields = dict(fields or {})
    unknown = set(fields) - set(ROUTE_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update route field(s): {', '.join(sorted(unknown))}.")
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("Route name is required.")
    step_inputs = validate_steps(steps) if steps is not None else None

    route = get_route(db, route_id)

    stage = "update_route"
    try:
        for field, value in fields.items():
            setattr(route, field, value.strip() if field == "name" else value)
        db.flush()

        if step_inputs is not None:
            stage = "delete_steps"
            db.execute(delete(ApprovalStep).where(ApprovalStep.approval_route_id == route.id))
            db.flush()
            db.expire(route, ["steps"])

            stage = "insert_steps"
            db.add_all(_build_steps(route.id, step_inputs))
            db.flush()

        if route.is_active:
            stage = "deactivate_routes"
            _deactivate_other_routes(db, route.department_id, route.id)

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("update_route %s failed at %s", route_id, stage)
        raise PersistenceError(
            f"Failed to update approval route {route_id} ({stage}); no changes were applied.",
            stage=stage,
        ) from exc

    db.refresh(route)
    logger.info("Updated approval route %s (fields=%s, steps_replaced=%s)", route_id, sorted(fields), step_inputs is not None)
    return route


def delete_route(db: Session, route_id: uuid.UUID) -> None:
    """Delete a route: steps first, then the route row.

    Raises:
        NotFoundError: route does not exist.
        PersistenceError: the delete failed; nothing was removed.
    """
    route = get_route(db, route_id)

    stage = "delete_steps"
    try:
        db.execute(delete(ApprovalStep).where(ApprovalStep.approval_route_id == route.id))
        db.flush()
        db.expire(route, ["steps"])

        stage = "delete_route"
        db.delete(route)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("delete_route %s failed at %s", route_id, stage)
        raise PersistenceError(f"Failed to delete approval route {route_id} ({stage}).", stage=stage) from exc

    logger.info("Deleted approval route %s", route_id)


# ─── Reads ───

def get_route(db: Session, route_id: uuid.UUID) -> ApprovalRoute:
    route = db.execute(
        select(ApprovalRoute).where(ApprovalRoute.id == route_id)
    ).scalars().first()
    if route is None:
        raise NotFoundError(f"Approval route {route_id} not found.")
    return route


def list_routes(
    db: Session,
    department_id: uuid.UUID | None = None,
    active_only: bool = False,
) -> list[ApprovalRoute]:
    stmt = select(ApprovalRoute).order_by(ApprovalRoute.created_at.desc())
    if department_id is not None:
        stmt = stmt.where(ApprovalRoute.department_id == department_id)
    if active_only:
        stmt = stmt.where(ApprovalRoute.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


# ─── In-memory draft editing ───

class DraftStep:
    """Editable step held by a RouteDraft. ``key`` is stable across renumbering."""

    def __init__(self, key: str, step_number: int, data: ApprovalStepIn):
        self.key = key
        self.step_number = step_number
        self.data = data

    def __repr__(self) -> str:
        return f"<DraftStep {self.key} #{self.step_number} {self.data.approver_type}>"


class RouteDraft:
    """Local, unsaved copy of a new or existing route.

    add_step / remove_step / update_step_field never touch the database;
    persist_draft() writes the whole draft in a single call. Step numbers are
    kept contiguous 1..N after every change.
    """

    def __init__(
        self,
        name: str = "",
        department_id: uuid.UUID | None = None,
        description: str | None = None,
        is_active: bool = True,
        route_id: uuid.UUID | None = None,
    ):
        self.route_id = route_id
        self.name = name
        self.department_id = department_id
        self.description = description
        self.is_active = is_active
        self.steps: list[DraftStep] = []
        self._keys = itertools.count(1)

    @classmethod
    def from_route(cls, route: ApprovalRoute) -> "RouteDraft":
        draft = cls(
            name=route.name,
            department_id=route.department_id,
            description=route.description,
            is_active=route.is_active,
            route_id=route.id,
        )
        for step in sorted(route.steps, key=lambda s: s.step_number):
            draft.add_step(
                approver_type=step.approver_type,
                approver_id=step.approver_id,
                role_name=step.role_name,
                department_id=step.department_id,
                min_amount=step.min_amount,
                max_amount=step.max_amount,
                is_required=step.is_required,
                can_delegate=step.can_delegate,
                auto_approve_if_same_user=step.auto_approve_if_same_user,
            )
        return draft

    @property
    def is_new(self) -> bool:
        return self.route_id is None

    def add_step(self, **fields: Any) -> str:
        """Append a step (defaults: user approver, required) and return its key."""
        unknown = set(fields) - STEP_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown step field(s): {', '.join(sorted(unknown))}.")
        key = f"step-{next(self._keys)}"
        self.steps.append(DraftStep(key, len(self.steps) + 1, self._validated(fields)))
        return key

    def remove_step(self, key: str) -> None:
        step = self._find(key)
        self.steps.remove(step)
        self._renumber()

    def update_step_field(self, key: str, field: str, value: Any) -> None:
        if field not in STEP_EDITABLE_FIELDS:
            raise ValidationError(f"Unknown step field '{field}'.")
        step = self._find(key)
        step.data = self._validated({**step.data.model_dump(), field: value})

    def step_inputs(self) -> list[ApprovalStepIn]:
        return [step.data for step in self.steps]

    @staticmethod
    def _validated(fields: dict[str, Any]) -> ApprovalStepIn:
        # Completeness (approver identity, amount order) is checked on persist.
        try:
            return ApprovalStepIn.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(exc.errors()[0]["msg"]) from exc

    def _find(self, key: str) -> DraftStep:
        for step in self.steps:
            if step.key == key:
                return step
        raise NotFoundError(f"Draft step '{key}' not found.")

    def _renumber(self) -> None:
        for index, step in enumerate(self.steps):
            step.step_number = index + 1


def persist_draft(db: Session, draft: RouteDraft, created_by: uuid.UUID | None = None) -> ApprovalRoute:
    """Write a draft: create for a new route, full replace for an existing one."""
    if draft.is_new:
        route = create_route(
            db,
            name=draft.name,
            department_id=draft.department_id,
            steps=draft.step_inputs(),
            description=draft.description,
            is_active=draft.is_active,
            created_by=created_by,
        )
        draft.route_id = route.id
        return route

    return update_route(
        db,
        draft.route_id,
        fields={"name": draft.name, "description": draft.description, "is_active": draft.is_active},
        steps=draft.step_inputs(),
    )
