"""Baseline -- builds and projects tables.

Revision ID: 0001_baseline
Revises: None
Create Date: 2026-10-19

Idempotent (IF NOT EXISTS) so it can be stamped onto a database that the
server already bootstrapped at startup.
"""
from typing import Sequence, Union

from alembic import op

from tinyci.repos.db import SCHEMA_STATEMENTS

# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    for statement in SCHEMA_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS projects")
    op.execute("DROP TABLE IF EXISTS builds")
