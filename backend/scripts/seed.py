"""Seed script — creates departments, users, an approval route and sample applications.

Idempotent: checks for existing records before inserting.
Run: python scripts/seed.py   (from backend/)
"""
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.db.session import SessionLocal
from app.models.application import Application
from app.models.approval_route import ApprovalRoute
from app.models.department import Department
from app.models.user import User
from app.services import applications as applications_svc
from app.services import approval as approval_svc
from app.services import route_config


# ─── Upsert helpers ───────────────────────────────────────────────────────────

def _upsert_department(db: Session, name: str) -> Department:
    department = db.execute(select(Department).where(Department.name == name)).scalars().first()
    if department:
        print(f"  [skip] Department {name}")
        return department
    department = Department(name=name)
    db.add(department)
    db.flush()
    print(f"  [new]  Department {name}")
    return department


def _upsert_user(db: Session, email: str, name: str, role: str, department: Department) -> User:
    user = db.execute(select(User).where(User.email == email)).scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(email=email, name=name, role=role, department_id=department.id, is_active=True)
    db.add(user)
    db.flush()
    print(f"  [new]  User {email} ({role})")
    return user


def _ensure_route(db: Session, department: Department, manager: User, admin: User) -> ApprovalRoute:
    existing = db.execute(
        select(ApprovalRoute).where(ApprovalRoute.department_id == department.id)
    ).scalars().first()
    if existing:
        print(f"  [skip] Route {existing.name}")
        return existing
    route = route_config.create_route(
        db,
        name=f"{department.name} standard approval",
        department_id=department.id,
        created_by=admin.id,
        steps=[
            {"approver_type": "user", "approver_id": manager.id, "auto_approve_if_same_user": True},
            {"approver_type": "department_head"},
            {"approver_type": "role", "role_name": "ADMIN", "min_amount": Decimal("100000")},
        ],
    )
    print(f"  [new]  Route {route.name} ({len(route.steps)} steps)")
    return route


def _ensure_application(db: Session, applicant: User, department: Department, title: str,
                        amount: Decimal, submit: bool) -> Application:
    existing = db.execute(
        select(Application).where(Application.title == title, Application.applicant_id == applicant.id)
    ).scalars().first()
    if existing:
        print(f"  [skip] Application {title}")
        return existing
    application = applications_svc.create_application(
        db, applicant_id=applicant.id, type="expense", title=title,
        department_id=department.id, total_amount=amount,
    )
    if submit:
        approval_svc.submit_application(db, application.id, applicant.id)
    print(f"  [new]  Application {title} ({application.status})")
    return application


def seed():
    with SessionLocal() as db:
        print("── Departments / users ──")
        sales = _upsert_department(db, "Sales")
        admin = _upsert_user(db, "admin@example.com", "Admin User", "ADMIN", sales)
        manager = _upsert_user(db, "manager@example.com", "Sales Manager", "APPROVER", sales)
        head = _upsert_user(db, "head@example.com", "Head of Sales", "APPROVER", sales)
        employee = _upsert_user(db, "employee@example.com", "Sales Rep", "EMPLOYEE", sales)
        sales.head_user_id = head.id
        db.commit()

        print("\n── Approval routes ──")
        _ensure_route(db, sales, manager, admin)

        print("\n── Applications ──")
        _ensure_application(db, employee, sales, "Client visit Osaka", Decimal("45000"), submit=True)
        _ensure_application(db, employee, sales, "Conference travel", Decimal("180000"), submit=False)

        print("\n✓ Seed complete. Dev bearer tokens:")
        for user in (admin, manager, head, employee):
            token = create_access_token(str(user.id), user.role, str(user.department_id))
            print(f"  {user.email:<22} ({user.role}): {token}")


if __name__ == "__main__":
    seed()
