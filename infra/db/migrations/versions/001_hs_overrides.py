"""hs code override table

Revision ID: 001_hs_overrides
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_hs_overrides'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # User-confirmed HS code per product name (case-insensitive key)
    op.create_table(
        'hs_overrides',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),

        # Identification
        sa.Column('product_key', sa.Text, nullable=False, unique=True, comment='lower(product_name), lookup key'),
        sa.Column('product_name', sa.Text, nullable=False, comment='Name as first entered, casing preserved'),

        # Correction
        sa.Column('correct_code', sa.Text, nullable=False, comment='User-confirmed HS code'),

        # Learning metadata
        sa.Column('times_confirmed', sa.Integer, nullable=False, server_default='1', comment='Corrections/confirmations received'),

        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_check_constraint(
        'ck_hs_overrides_code_length',
        'hs_overrides',
        'length(correct_code) >= 6',
    )


def downgrade() -> None:
    op.drop_table('hs_overrides')
