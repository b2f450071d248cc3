"""initial_ledger_schema

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f0c2d3e4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(*values: str, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        'employee',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('emp_id', sa.String(length=50), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('designation', sa.String(length=100), nullable=True),
        sa.Column('pan', sa.String(length=10), nullable=True),
        sa.Column('aadhaar', sa.String(length=12), nullable=True),
        sa.Column('salary', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('thrift_contribution', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('thrift_balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('loan_status', sa.String(length=20), nullable=False),
        sa.Column('active_loan_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('employee', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_employee_emp_id'), ['emp_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_employee_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_employee_name'), ['name'], unique=False)

    op.create_table(
        'loan',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('borrower_id', sa.Uuid(), nullable=False),
        sa.Column('loan_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('emi', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('remaining_balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('status', _enum('active', 'closed', name='loanstatus'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('surety_emp_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['borrower_id'], ['employee.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('loan', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loan_borrower_id'), ['borrower_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loan_status'), ['status'], unique=False)

    with op.batch_alter_table('employee', schema=None) as batch_op:
        batch_op.create_foreign_key('fk_employee_active_loan', 'loan', ['active_loan_id'], ['id'])

    op.create_table(
        'loan_surety',
        sa.Column('loan_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ),
        sa.ForeignKeyConstraint(['loan_id'], ['loan.id'], ),
        sa.PrimaryKeyConstraint('loan_id', 'employee_id')
    )
    with op.batch_alter_table('loan_surety', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loan_surety_employee_id'), ['employee_id'], unique=False)

    op.create_table(
        'ledger_transaction',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('salary', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('thrift_deduction', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('loan_emi', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('interest_payment', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('principal_repayment', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('loan_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_deduction', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('net_salary', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('cb_thrift_balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('loan_balance', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id', 'month', name='uq_transaction_employee_month')
    )
    with op.batch_alter_table('ledger_transaction', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ledger_transaction_employee_id'), ['employee_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_transaction_month'), ['month'], unique=False)

    op.create_table(
        'adjustment_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('action_type', _enum('salary', 'thrift', 'loan', 'dividend', name='adjustmentaction'), nullable=False),
        sa.Column('target_field', sa.String(length=50), nullable=True),
        sa.Column('old_value', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('new_value', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=False),
        sa.Column('performed_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('adjustment_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_adjustment_history_employee_id'), ['employee_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_adjustment_history_action_type'), ['action_type'], unique=False)

    op.create_table(
        'monthly_upload_log',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('uploaded_by', sa.String(length=100), nullable=True),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_type', _enum('employees', 'monthly', name='uploadfiletype'), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=False),
        sa.Column('success_count', sa.Integer(), nullable=False),
        sa.Column('failure_count', sa.Integer(), nullable=False),
        sa.Column('skipped_count', sa.Integer(), nullable=False),
        sa.Column('warning_count', sa.Integer(), nullable=False),
        sa.Column('error_log', sa.JSON(), nullable=False),
        sa.Column('status', _enum('completed', 'completed_with_errors', name='uploadstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('monthly_upload_log', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_monthly_upload_log_created_at'), ['created_at'], unique=False)

    op.create_table(
        'archived_month',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('archived_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('employee_count', sa.Integer(), nullable=False),
        sa.Column('total_thrift', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_emi', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_interest', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('total_deduction', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('employees', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('archived_month', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_archived_month_month'), ['month'], unique=True)

    op.create_table(
        'user_account',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', _enum('admin', 'employee', name='userroleenum'), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=True),
        sa.Column('must_change_password', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], ['employee.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('user_account', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_account_username'), ['username'], unique=True)
        batch_op.create_index(batch_op.f('ix_user_account_employee_id'), ['employee_id'], unique=True)


def downgrade() -> None:
    with op.batch_alter_table('user_account', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_user_account_employee_id'))
        batch_op.drop_index(batch_op.f('ix_user_account_username'))
    op.drop_table('user_account')

    with op.batch_alter_table('archived_month', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_archived_month_month'))
    op.drop_table('archived_month')

    with op.batch_alter_table('monthly_upload_log', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_monthly_upload_log_created_at'))
    op.drop_table('monthly_upload_log')

    with op.batch_alter_table('adjustment_history', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_adjustment_history_action_type'))
        batch_op.drop_index(batch_op.f('ix_adjustment_history_employee_id'))
    op.drop_table('adjustment_history')

    with op.batch_alter_table('ledger_transaction', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_ledger_transaction_month'))
        batch_op.drop_index(batch_op.f('ix_ledger_transaction_employee_id'))
    op.drop_table('ledger_transaction')

    with op.batch_alter_table('loan_surety', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_loan_surety_employee_id'))
    op.drop_table('loan_surety')

    with op.batch_alter_table('employee', schema=None) as batch_op:
        batch_op.drop_constraint('fk_employee_active_loan', type_='foreignkey')

    with op.batch_alter_table('loan', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_loan_status'))
        batch_op.drop_index(batch_op.f('ix_loan_borrower_id'))
    op.drop_table('loan')

    with op.batch_alter_table('employee', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_employee_name'))
        batch_op.drop_index(batch_op.f('ix_employee_email'))
        batch_op.drop_index(batch_op.f('ix_employee_emp_id'))
    op.drop_table('employee')
