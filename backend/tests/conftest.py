"""Shared fixtures: in-memory SQLite database and record factories."""
import os

# Settings are read at import time; point them at throwaway backends first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVENT_DISPATCH_ENABLED", "false")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.db.base import Base
from app.models.application import Application
from app.models.department import Department
from app.models.user import User
from app.services import route_config


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str = "sqlite://"):
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


class Factory:
    """Creates committed records with sensible defaults."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def department(self, name: str | None = None, head: User | None = None) -> Department:
        department = Department(name=name or f"Dept {self._next()}", head_user_id=head.id if head else None)
        self.db.add(department)
        self.db.commit()
        return department

    def user(self, department: Department | None = None, role: str = "EMPLOYEE", name: str | None = None) -> User:
        n = self._next()
        user = User(
            email=f"user{n}@example.com",
            name=name or f"User {n}",
            role=role,
            department_id=department.id if department else None,
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def route(self, department: Department, steps: list[dict], name: str = "Standard", is_active: bool = True):
        return route_config.create_route(
            self.db, name=name, department_id=department.id, steps=steps, is_active=is_active
        )

    def application(
        self,
        applicant: User,
        department: Department,
        amount: Decimal | int | None = 1000,
        status: str = "draft",
        current_approver: User | None = None,
        title: str | None = None,
    ) -> Application:
        application = Application(
            type="expense",
            title=title or f"Expense {self._next()}",
            department_id=department.id,
            applicant_id=applicant.id,
            total_amount=Decimal(str(amount)) if amount is not None else None,
            status=status,
            current_approver_id=current_approver.id if current_approver else None,
        )
        self.db.add(application)
        self.db.commit()
        return application


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def org(factory):
    """A department with an applicant, three approvers and a head."""
    department = factory.department("Sales")
    head = factory.user(department, role="APPROVER", name="Head")
    department.head_user_id = head.id
    factory.db.commit()
    return {
        "department": department,
        "head": head,
        "applicant": factory.user(department, name="Applicant"),
        "x": factory.user(department, role="APPROVER", name="X"),
        "y": factory.user(department, role="APPROVER", name="Y"),
        "z": factory.user(department, role="APPROVER", name="Z"),
        "admin": factory.user(department, role="ADMIN", name="Admin"),
    }


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed database, so two sessions use separate connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'workflow.db'}")
    yield sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    engine.dispose()
