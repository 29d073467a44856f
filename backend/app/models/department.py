import uuid

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin


class Department(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # No FK: users.department_id already points here.
    head_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
