"""Tests for application records: create, edit, delete, filtered listing."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import NotFoundError, UnauthorizedActionError, ValidationError
from app.models.approval_log import ApprovalLog
from app.models.workflow_event import WorkflowEvent
from app.services import applications as applications_svc
from app.services import approval as approval_svc


def _create(factory, org, **overrides):
    fields = {
        "applicant_id": org["applicant"].id,
        "type": "business_trip",
        "title": "Client visit",
        "department_id": org["department"].id,
        "total_amount": Decimal("1200.50"),
    }
    fields.update(overrides)
    return applications_svc.create_application(factory.db, **fields)


# ─── Create ──────────────────────────────────────────────────────────────────

def test_create_application_starts_as_draft(factory, org):
    application = _create(factory, org, metadata={"destination": "Osaka"})

    assert application.status == "draft"
    assert application.priority == "normal"
    assert application.current_approver_id is None
    assert application.extra == {"destination": "Osaka"}
    assert application.version == 1


@pytest.mark.parametrize("overrides", [
    {"title": "   "},
    {"type": "lunch"},
    {"priority": "whenever"},
    {"total_amount": Decimal("-1")},
    {"department_id": None},
    {"department_id": uuid.uuid4()},
])
def test_create_application_validation(factory, org, overrides):
    with pytest.raises(ValidationError):
        _create(factory, org, **overrides)


def test_get_missing_application(factory):
    with pytest.raises(NotFoundError):
        applications_svc.get_application(factory.db, uuid.uuid4())


# ─── Update ──────────────────────────────────────────────────────────────────

def test_applicant_edits_draft(factory, org):
    application = _create(factory, org)

    updated = applications_svc.update_application(
        factory.db, application.id, org["applicant"].id,
        {"title": "Client visit (2 days)", "total_amount": Decimal("2400"), "metadata": {"nights": 2}},
    )

    assert updated.title == "Client visit (2 days)"
    assert updated.total_amount == Decimal("2400")
    assert updated.extra == {"nights": 2}
    assert updated.version == 2


def test_only_applicant_may_edit(factory, org):
    application = _create(factory, org)

    with pytest.raises(UnauthorizedActionError):
        applications_svc.update_application(factory.db, application.id, org["x"].id, {"title": "Mine now"})


def test_pending_application_is_locked(factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])
    application = _create(factory, org)
    approval_svc.submit_application(factory.db, application.id, org["applicant"].id)

    with pytest.raises(ValidationError):
        applications_svc.update_application(factory.db, application.id, org["applicant"].id, {"title": "Late edit"})


def test_update_rejects_unknown_fields(factory, org):
    application = _create(factory, org)

    with pytest.raises(ValidationError):
        applications_svc.update_application(factory.db, application.id, org["applicant"].id, {"status": "approved"})


# ─── Delete ──────────────────────────────────────────────────────────────────

def test_delete_removes_history_and_events(factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])
    application = _create(factory, org)
    approval_svc.submit_application(factory.db, application.id, org["applicant"].id)
    approval_svc.process_action(factory.db, application.id, org["x"].id, "return")

    applications_svc.delete_application(factory.db, application.id, org["applicant"].id)

    with pytest.raises(NotFoundError):
        applications_svc.get_application(factory.db, application.id)
    assert factory.db.execute(
        select(ApprovalLog).where(ApprovalLog.application_id == application.id)
    ).scalars().all() == []
    assert factory.db.execute(
        select(WorkflowEvent).where(WorkflowEvent.application_id == application.id)
    ).scalars().all() == []


def test_applicant_cannot_delete_in_flight(factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])
    application = _create(factory, org)
    approval_svc.submit_application(factory.db, application.id, org["applicant"].id)

    with pytest.raises(ValidationError):
        applications_svc.delete_application(factory.db, application.id, org["applicant"].id)

    applications_svc.delete_application(factory.db, application.id, org["admin"].id, is_admin=True)
    with pytest.raises(NotFoundError):
        applications_svc.get_application(factory.db, application.id)


def test_stranger_cannot_delete(factory, org):
    application = _create(factory, org)

    with pytest.raises(UnauthorizedActionError):
        applications_svc.delete_application(factory.db, application.id, org["y"].id)


# ─── Listing ─────────────────────────────────────────────────────────────────

def test_list_filters_and_newest_first(factory, org):
    other_department = factory.department("Finance")
    first = _create(factory, org, title="Hotel Tokyo")
    second = _create(factory, org, title="Taxi receipts", type="expense")
    _create(factory, org, title="Hotel Berlin", department_id=other_department.id)
    factory.route(org["department"], [{"approver_id": org["x"].id}])
    approval_svc.submit_application(factory.db, second.id, org["applicant"].id)

    rows, total = applications_svc.list_applications(factory.db, department_id=org["department"].id)
    assert total == 2
    assert [a.id for a in rows] == [second.id, first.id]

    rows, total = applications_svc.list_applications(factory.db, search="hotel")
    assert total == 2
    assert {a.title for a in rows} == {"Hotel Tokyo", "Hotel Berlin"}

    rows, total = applications_svc.list_applications(factory.db, statuses=["pending"])
    assert [a.id for a in rows] == [second.id]

    rows, total = applications_svc.list_applications(factory.db, current_approver_id=org["x"].id)
    assert [a.id for a in rows] == [second.id]


def test_list_pagination(factory, org):
    for n in range(5):
        _create(factory, org, title=f"Trip {n}")

    rows, total = applications_svc.list_applications(factory.db, applicant_id=org["applicant"].id, limit=2, offset=2)

    assert total == 5
    assert [a.title for a in rows] == ["Trip 2", "Trip 1"]
