"""add documents and identities tables

Revision ID: 20261019_1200_documents_identities
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_1200_documents_identities'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create documents table (one row per document of every collection)
    op.create_table(
        'documents',
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('collection', 'id')
    )

    # Create identities table
    op.create_table(
        'identities',
        sa.Column('uid', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('signed_in', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('last_sign_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('uid')
    )
    op.create_index(op.f('ix_identities_email'), 'identities', ['email'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_identities_email'), table_name='identities')
    op.drop_table('identities')
    op.drop_table('documents')
