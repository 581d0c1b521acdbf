"""appointment calendar event ids

Revision ID: c7d2f90e4a18
Revises: a1c4e7b2d903
Create Date: 2026-10-17 10:03:27.114562

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c7d2f90e4a18'
down_revision: Union[str, Sequence[str], None] = 'a1c4e7b2d903'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('appointments', sa.Column('calendar_event_ids', sa.JSON(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column('appointments', 'calendar_event_ids')
