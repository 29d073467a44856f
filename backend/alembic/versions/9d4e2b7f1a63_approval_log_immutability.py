"""approval_log_immutability

Revision ID: 9d4e2b7f1a63
Revises: 7a1c0e5d2b90
Create Date: 2026-10-12 09:30:00.000000

Enforce append-only semantics on approval_logs at the DB level:
- Revoke UPDATE from PUBLIC
- Grant SELECT, INSERT and DELETE

DELETE stays granted because entries are removed together with their
application.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '9d4e2b7f1a63'
down_revision: Union[str, None] = '7a1c0e5d2b90'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("REVOKE UPDATE ON approval_logs FROM PUBLIC;")
    op.execute("GRANT SELECT, INSERT, DELETE ON approval_logs TO PUBLIC;")


def downgrade() -> None:
    # Restore full DML access (only for disaster-recovery; normally never run)
    op.execute("GRANT UPDATE ON approval_logs TO PUBLIC;")
