"""Create users, outsource entities, loans, loan payments and collateral items

Revision ID: 7c1e4a9d2b30
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1e4a9d2b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('ADMIN', 'LOAN_OFFICER', 'EMPLOYEE', name='userrole')
entity_type = sa.Enum('ORGANIZATION', 'INDIVIDUAL', name='entitytype')
entity_status = sa.Enum('ACTIVE', 'INACTIVE', name='entitystatus')
gold_purity = sa.Enum('18K', '22K', '24K', '91.6%', '91.7%', '99.9%', name='goldpurity')
loan_status = sa.Enum('PENDING', 'UNDER_REVIEW', 'APPROVED', 'REJECTED', 'DISBURSED', 'CLOSED', name='loanstatus')
loan_account = sa.Enum('ACCOUNT1', 'ACCOUNT2', 'ACCOUNT3', name='loanaccount')
document_status = sa.Enum('DRAFT', 'GENERATED', 'SIGNED', 'COMPLETED', name='documentstatus')
closure_reason = sa.Enum('FULLY_PAID', 'SETTLEMENT', 'WRITE_OFF', 'COLLATERAL_AUCTION', 'OTHER', name='closurereason')
payment_method = sa.Enum('CASH', 'BANK_TRANSFER', 'CHEQUE', 'ONLINE', name='paymentmethod')
collateral_type = sa.Enum('GOLD', 'SILVER', 'DIAMOND', 'OTHER', name='collateraltype')


def upgrade() -> None:
    # ============================================================
    # Users
    # ============================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # ============================================================
    # Outsource entities
    # ============================================================
    op.create_table('outsource_entities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('entity_type', entity_type, nullable=False),
        sa.Column('contact_person', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('max_loan_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('status', entity_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_outsource_entities_id'), 'outsource_entities', ['id'], unique=False)
    op.create_index(op.f('ix_outsource_entities_name'), 'outsource_entities', ['name'], unique=False)
    op.create_index(op.f('ix_outsource_entities_entity_type'), 'outsource_entities', ['entity_type'], unique=False)
    op.create_index(op.f('ix_outsource_entities_status'), 'outsource_entities', ['status'], unique=False)
    op.create_index(op.f('ix_outsource_entities_created_by_id'), 'outsource_entities', ['created_by_id'], unique=False)

    # ============================================================
    # Loans
    # ============================================================
    op.create_table('loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_number', sa.String(length=20), nullable=False),
        # Applicant
        sa.Column('applicant_name', sa.String(length=100), nullable=False),
        sa.Column('applicant_phone', sa.String(length=20), nullable=False),
        sa.Column('applicant_email', sa.String(length=255), nullable=True),
        sa.Column('address_street', sa.String(length=255), nullable=True),
        sa.Column('address_city', sa.String(length=100), nullable=True),
        sa.Column('address_state', sa.String(length=100), nullable=True),
        sa.Column('address_zip_code', sa.String(length=20), nullable=True),
        sa.Column('address_country', sa.String(length=100), nullable=True),
        # Terms and gold
        sa.Column('loan_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('loan_term', sa.Integer(), nullable=False),
        sa.Column('net_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('gross_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('gold_purity', gold_purity, nullable=False),
        sa.Column('monthly_emi', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('total_interest', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('total_net_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_gross_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', loan_status, nullable=False),
        sa.Column('account', loan_account, nullable=True),
        # Dates and actors
        sa.Column('application_date', sa.DateTime(), nullable=False),
        sa.Column('approval_date', sa.DateTime(), nullable=True),
        sa.Column('disbursement_date', sa.DateTime(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('submitted_by_id', sa.Integer(), nullable=False),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        # Signature
        sa.Column('signature_data', sa.Text(), nullable=True),
        sa.Column('signed_at', sa.DateTime(), nullable=True),
        sa.Column('signed_by_id', sa.Integer(), nullable=True),
        sa.Column('document_status', document_status, nullable=False),
        # Outsourcing
        sa.Column('outsourced_to_id', sa.Integer(), nullable=True),
        sa.Column('outsource_entity', sa.String(length=100), nullable=True),
        sa.Column('outsource_date', sa.DateTime(), nullable=True),
        sa.Column('outsource_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('outsource_interest_rate', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('profit_margin', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('outsource_notes', sa.Text(), nullable=True),
        # Soft delete and closure
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('closed_by_id', sa.Integer(), nullable=True),
        sa.Column('closure_reason', closure_reason, nullable=True),
        sa.Column('closure_notes', sa.Text(), nullable=True),
        sa.Column('final_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['submitted_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['signed_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['closed_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['outsourced_to_id'], ['outsource_entities.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loans_id'), 'loans', ['id'], unique=False)
    op.create_index(op.f('ix_loans_loan_number'), 'loans', ['loan_number'], unique=True)
    op.create_index(op.f('ix_loans_applicant_phone'), 'loans', ['applicant_phone'], unique=False)
    op.create_index(op.f('ix_loans_applicant_email'), 'loans', ['applicant_email'], unique=False)
    op.create_index(op.f('ix_loans_status'), 'loans', ['status'], unique=False)
    op.create_index(op.f('ix_loans_account'), 'loans', ['account'], unique=False)
    op.create_index(op.f('ix_loans_application_date'), 'loans', ['application_date'], unique=False)
    op.create_index(op.f('ix_loans_submitted_by_id'), 'loans', ['submitted_by_id'], unique=False)
    op.create_index(op.f('ix_loans_outsourced_to_id'), 'loans', ['outsourced_to_id'], unique=False)
    op.create_index(op.f('ix_loans_is_active'), 'loans', ['is_active'], unique=False)
    op.create_index(op.f('ix_loans_closed_at'), 'loans', ['closed_at'], unique=False)
    op.create_index('ix_loans_status_application_date', 'loans', ['status', 'application_date'], unique=False)
    op.create_index('ix_loans_submitted_by_status', 'loans', ['submitted_by_id', 'status'], unique=False)
    op.create_index('ix_loans_account_status', 'loans', ['account', 'status'], unique=False)

    # ============================================================
    # Loan payments, one per month of the term
    # ============================================================
    op.create_table('loan_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('received_by_id', sa.Integer(), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['received_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('loan_id', 'month', name='uq_loan_payments_loan_month')
    )
    op.create_index(op.f('ix_loan_payments_id'), 'loan_payments', ['id'], unique=False)
    op.create_index(op.f('ix_loan_payments_loan_id'), 'loan_payments', ['loan_id'], unique=False)

    # ============================================================
    # Collateral items
    # ============================================================
    op.create_table('collateral_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=200), nullable=False),
        sa.Column('item_type', collateral_type, nullable=False),
        sa.Column('net_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('gross_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('purity', sa.String(length=20), nullable=False),
        sa.Column('estimated_value', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['loan_id'], ['loans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_collateral_items_id'), 'collateral_items', ['id'], unique=False)
    op.create_index(op.f('ix_collateral_items_loan_id'), 'collateral_items', ['loan_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_collateral_items_loan_id'), table_name='collateral_items')
    op.drop_index(op.f('ix_collateral_items_id'), table_name='collateral_items')
    op.drop_table('collateral_items')

    op.drop_index(op.f('ix_loan_payments_loan_id'), table_name='loan_payments')
    op.drop_index(op.f('ix_loan_payments_id'), table_name='loan_payments')
    op.drop_table('loan_payments')

    op.drop_table('loans')
    op.drop_table('outsource_entities')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        collateral_type, payment_method, closure_reason, document_status, loan_account,
        loan_status, gold_purity, entity_status, entity_type, user_role
    ):
        enum_type.drop(bind, checkfirst=True)
