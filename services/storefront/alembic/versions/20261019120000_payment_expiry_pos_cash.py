from alembic import op
import sqlalchemy as sa

revision = "20261019120000"
down_revision = "20261019090000"

def upgrade():
    with op.batch_alter_table('payments') as batch:
        batch.add_column(sa.Column('expired_at', sa.DateTime()))
        batch.create_index('ix_payments_expired_at', ['expired_at'])
    with op.batch_alter_table('pos_transactions') as batch:
        batch.add_column(sa.Column('cash_received', sa.BigInteger()))
        batch.add_column(sa.Column('cash_change', sa.BigInteger(), nullable=False, server_default='0'))
        batch.alter_column('payment_method', existing_type=sa.String(length=50), type_=sa.String(length=32))
        batch.create_check_constraint(
            'ck_pos_transactions_payment_method',
            "payment_method IN ('Cash', 'QRIS', 'Virtual_Account')",
        )

def downgrade():
    with op.batch_alter_table('pos_transactions') as batch:
        batch.drop_constraint('ck_pos_transactions_payment_method', type_='check')
        batch.alter_column('payment_method', existing_type=sa.String(length=32), type_=sa.String(length=50))
        batch.drop_column('cash_change')
        batch.drop_column('cash_received')
    with op.batch_alter_table('payments') as batch:
        batch.drop_index('ix_payments_expired_at')
        batch.drop_column('expired_at')
