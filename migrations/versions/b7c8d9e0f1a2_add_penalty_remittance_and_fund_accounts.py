"""add penalty remittance and bank account fund-account validation

Revision ID: b7c8d9e0f1a2
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c8d9e0f1a2'
down_revision = 'a1b2c3d4e5f6'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('salon_bank_accounts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('gateway_contact_id', sa.String(length=64), nullable=True))
        batch_op.add_column(sa.Column('gateway_fund_account_id', sa.String(length=64), nullable=True))
        batch_op.add_column(sa.Column('verification_status', sa.String(length=20), nullable=True))
        batch_op.add_column(sa.Column('bank_holder_name', sa.String(length=120), nullable=True))
        batch_op.add_column(sa.Column('verified_at', sa.DateTime(), nullable=True))

    with op.batch_alter_table('cancellation_penalties', schema=None) as batch_op:
        batch_op.add_column(sa.Column('remitted_to_platform', sa.Boolean(), server_default=sa.false(), nullable=False))
        batch_op.add_column(sa.Column('remitted_at', sa.DateTime(), nullable=True))
        batch_op.create_index(batch_op.f('ix_cancellation_penalties_collected_by_salon_id'), ['collected_by_salon_id'], unique=False)

    op.create_table(
        'salon_penalty_remittances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('salon_id', sa.Integer(), nullable=False),
        sa.Column('payout_id', sa.Integer(), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('penalty_ids_json', sa.Text(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('remitted_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['payout_id'], ['salon_payouts.id'], ),
        sa.ForeignKeyConstraint(['remitted_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['salon_id'], ['salons.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('salon_penalty_remittances', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_salon_penalty_remittances_salon_id'), ['salon_id'], unique=False)


def downgrade():
    with op.batch_alter_table('salon_penalty_remittances', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_salon_penalty_remittances_salon_id'))

    op.drop_table('salon_penalty_remittances')

    with op.batch_alter_table('cancellation_penalties', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_cancellation_penalties_collected_by_salon_id'))
        batch_op.drop_column('remitted_at')
        batch_op.drop_column('remitted_to_platform')

    with op.batch_alter_table('salon_bank_accounts', schema=None) as batch_op:
        batch_op.drop_column('verified_at')
        batch_op.drop_column('bank_holder_name')
        batch_op.drop_column('verification_status')
        batch_op.drop_column('gateway_fund_account_id')
        batch_op.drop_column('gateway_contact_id')
