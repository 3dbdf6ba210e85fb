"""Create amc_contracts table

Revision ID: 001_create_amc_contracts
Revises:
Create Date: 2026-10-19

Note: The visit schedule lives in a JSON column on the contract row;
visits are addressed by index and have no table of their own.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_create_amc_contracts'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create amc_contracts."""
    conn = op.get_bind()

    result = conn.execute(text(
        "SELECT EXISTS (SELECT FROM information_schema.tables WHERE table_name = 'amc_contracts')"
    ))
    if result.scalar():
        return

    op.create_table(
        'amc_contracts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('contract_number', sa.String(50), nullable=False),
        sa.Column('contract_type', sa.String(10), nullable=False, server_default='AMC'),
        # Customer
        sa.Column('customer_id', sa.String(64), nullable=False),
        sa.Column('customer_address', sa.Text()),
        sa.Column('contact_person_name', sa.String(255)),
        sa.Column('contact_number', sa.String(50)),
        # Engine / DG set
        sa.Column('engine_serial_number', sa.String(100), nullable=False),
        sa.Column('engine_model', sa.String(100)),
        sa.Column('kva', sa.Float()),
        sa.Column('dg_make', sa.String(100)),
        sa.Column('date_of_commissioning', sa.Date()),
        # Term and plan
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('number_of_visits', sa.Integer(), nullable=False),
        sa.Column('number_of_oil_services', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('contract_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('terms', sa.Text()),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        # Derived from visit_schedule
        sa.Column('completed_visits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_visit_date', sa.Date()),
        sa.Column('visit_schedule', sa.JSON(), nullable=False),
        sa.Column('renewed_from_id', postgresql.UUID(as_uuid=True)),
        # Optimistic concurrency
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_amc_contracts_id', 'amc_contracts', ['id'])
    op.create_index('ix_amc_contracts_contract_number', 'amc_contracts', ['contract_number'], unique=True)
    op.create_index('ix_amc_contracts_customer_id', 'amc_contracts', ['customer_id'])
    op.create_index('ix_amc_contracts_engine_serial_number', 'amc_contracts', ['engine_serial_number'])
    op.create_index('ix_amc_contracts_end_date', 'amc_contracts', ['end_date'])
    op.create_index('ix_amc_contracts_status', 'amc_contracts', ['status'])
    op.create_index('ix_amc_contracts_next_visit_date', 'amc_contracts', ['next_visit_date'])
    op.create_index('ix_amc_contracts_renewed_from_id', 'amc_contracts', ['renewed_from_id'])


def downgrade():
    """Drop amc_contracts."""
    op.drop_table('amc_contracts')
