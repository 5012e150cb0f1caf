"""Initial PayDesk schema

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the owner scope and everything hanging off it:
- accounts: owner scope
- employees: roster, unique per (account, national ID)
- salary_slips: one per employee per (month, year); RESTRICT on employee delete
- invoices / invoice_items: client invoices and their line items
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_0900'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return table_name in inspector.get_table_names()


def timestamp_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def money(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', **kwargs)


employee_status = sa.Enum('FULL_TIME', 'PROBATION', 'CONTRACT', name='employee_status')
gender = sa.Enum('MALE', 'FEMALE', name='gender')
invoice_status = sa.Enum('PENDING', 'PAID', 'OVERDUE', 'CANCELLED', name='invoice_status')


def upgrade() -> None:
    # ===========================================
    # ACCOUNTS TABLE
    # ===========================================
    if not table_exists('accounts'):
        op.create_table('accounts',
            sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('name', sa.String(255), nullable=False),
            *timestamp_columns(),
            sa.PrimaryKeyConstraint('id', name='pk_accounts'),
        )

    # ===========================================
    # EMPLOYEES TABLE
    # ===========================================
    if not table_exists('employees'):
        op.create_table('employees',
            sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('account_id', sa.Uuid(as_uuid=True), nullable=False),

            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('national_id', sa.String(50), nullable=False, comment='Government-issued identification number'),
            sa.Column('position', sa.String(255), nullable=False),
            sa.Column('status', employee_status, nullable=False),

            sa.Column('address', sa.Text, nullable=False),
            sa.Column('phone', sa.String(50), nullable=False),
            sa.Column('email', sa.String(255), nullable=True),

            sa.Column('gender', gender, nullable=True),
            sa.Column('date_of_birth', sa.Date, nullable=True),
            sa.Column('birth_location', sa.String(255), nullable=True),
            sa.Column('joined_date', sa.Date, nullable=True),
            sa.Column('last_education', sa.String(255), nullable=True),
            sa.Column('religion', sa.String(100), nullable=True),

            sa.Column('bank', sa.String(100), nullable=True),
            sa.Column('bank_number', sa.BigInteger, nullable=True),

            sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
            *timestamp_columns(),

            sa.PrimaryKeyConstraint('id', name='pk_employees'),
            sa.ForeignKeyConstraint(
                ['account_id'], ['accounts.id'],
                name='fk_employees_account_id_accounts', ondelete='CASCADE',
            ),
            sa.UniqueConstraint('account_id', 'national_id', name='uq_employee_account_national_id'),
        )
        op.create_index('ix_employees_account_id', 'employees', ['account_id'])

    # ===========================================
    # SALARY SLIPS TABLE
    # ===========================================
    if not table_exists('salary_slips'):
        op.create_table('salary_slips',
            sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('account_id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),

            # Period
            sa.Column('month', sa.String(20), nullable=False),
            sa.Column('year', sa.Integer, nullable=False),

            # Company block
            sa.Column('company_name', sa.String(255), nullable=False),
            sa.Column('company_address', sa.Text, nullable=True),
            sa.Column('company_logo', sa.String(500), nullable=True),

            # Components
            money('basic_salary'),
            money('position_allowance'),
            money('family_allowance'),
            money('child_allowance'),
            money('food_allowance'),
            money('bonus'),
            money('thr', comment='Religious holiday allowance (Tunjangan Hari Raya)'),
            money('others'),
            money('total_salary'),

            # Approval block
            sa.Column('approved_by', sa.String(255), nullable=True),
            sa.Column('approved_position', sa.String(255), nullable=True),
            sa.Column('notes', sa.Text, nullable=True),
            *timestamp_columns(),

            sa.PrimaryKeyConstraint('id', name='pk_salary_slips'),
            sa.ForeignKeyConstraint(
                ['account_id'], ['accounts.id'],
                name='fk_salary_slips_account_id_accounts', ondelete='CASCADE',
            ),
            sa.ForeignKeyConstraint(
                ['employee_id'], ['employees.id'],
                name='fk_salary_slips_employee_id_employees', ondelete='RESTRICT',
            ),
            sa.UniqueConstraint(
                'account_id', 'employee_id', 'month', 'year',
                name='uq_salary_slip_employee_period',
            ),
            sa.CheckConstraint('year >= 1900 AND year <= 9999', name='ck_salary_slips_year_range'),
        )
        op.create_index('ix_salary_slips_account_id', 'salary_slips', ['account_id'])
        op.create_index('ix_salary_slips_employee_id', 'salary_slips', ['employee_id'])

    # ===========================================
    # INVOICES TABLES
    # ===========================================
    if not table_exists('invoices'):
        op.create_table('invoices',
            sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('account_id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('invoice_no', sa.String(50), nullable=False),
            sa.Column('status', invoice_status, nullable=False),
            sa.Column('issue_date', sa.Date, nullable=False),
            sa.Column('due_date', sa.Date, nullable=True),

            sa.Column('our_name', sa.String(255), nullable=False),
            sa.Column('our_business_name', sa.String(255), nullable=True),
            sa.Column('our_address', sa.Text, nullable=True),

            sa.Column('client_name', sa.String(255), nullable=False),
            sa.Column('client_business_name', sa.String(255), nullable=True),
            sa.Column('client_address', sa.Text, nullable=True),
            sa.Column('client_email', sa.String(255), nullable=True),

            money('total'),
            sa.Column('notes', sa.Text, nullable=True),
            *timestamp_columns(),

            sa.PrimaryKeyConstraint('id', name='pk_invoices'),
            sa.ForeignKeyConstraint(
                ['account_id'], ['accounts.id'],
                name='fk_invoices_account_id_accounts', ondelete='CASCADE',
            ),
            sa.UniqueConstraint('account_id', 'invoice_no', name='uq_invoice_account_invoice_no'),
        )
        op.create_index('ix_invoices_account_id', 'invoices', ['account_id'])

    if not table_exists('invoice_items'):
        op.create_table('invoice_items',
            sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('invoice_id', sa.Uuid(as_uuid=True), nullable=False),
            sa.Column('description', sa.String(500), nullable=False),
            sa.Column('quantity', sa.Numeric(precision=10, scale=2), nullable=False, server_default='1'),
            sa.Column('price', sa.Numeric(precision=15, scale=2), nullable=False),
            sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
            sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
            *timestamp_columns(),

            sa.PrimaryKeyConstraint('id', name='pk_invoice_items'),
            sa.ForeignKeyConstraint(
                ['invoice_id'], ['invoices.id'],
                name='fk_invoice_items_invoice_id_invoices', ondelete='CASCADE',
            ),
        )
        op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])


def downgrade() -> None:
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('salary_slips')
    op.drop_table('employees')
    op.drop_table('accounts')

    bind = op.get_bind()
    if bind.dialect.name != 'postgresql':
        return
    invoice_status.drop(bind, checkfirst=True)
    gender.drop(bind, checkfirst=True)
    employee_status.drop(bind, checkfirst=True)
