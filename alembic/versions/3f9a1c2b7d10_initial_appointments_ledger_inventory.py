"""initial_appointments_ledger_inventory

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-19 09:12:44.301877

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. Tenants y usuarios
    op.create_table('clinics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('timezone', sa.String(length=50), nullable=False, comment="Zona horaria IANA; define el 'día calendario' de la agenda"),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('role', sa.Enum('OWNER', 'ADMIN', 'RECEPTIONIST', 'ESTHETICIAN', name='userrole'), nullable=False),
        sa.Column('google_calendar_connected', sa.Boolean(), nullable=False),
        sa.Column('google_calendar_id', sa.String(length=255), nullable=True, comment='ID del calendario destino (null = primary)'),
        sa.Column('google_access_token', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_clinic_id'), 'users', ['clinic_id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table('patients',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('last_visit', sa.DateTime(timezone=True), nullable=True, comment='Última atención completada'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_patients_clinic_id'), 'patients', ['clinic_id'], unique=False)

    # 2. Catálogo e inventario
    op.create_table('procedures',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, comment='Duración estimada en minutos'),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False, comment='Precio de venta vigente'),
        sa.Column('cost', sa.Numeric(precision=12, scale=2), nullable=False, comment='Costo estimado manual; solo para reportes, nunca para el ledger'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_procedure_clinic', 'procedures', ['clinic_id'], unique=False)

    op.create_table('inventory_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('unit', sa.String(length=30), nullable=False, comment='Unidad de medida (un, ml, g, caja...)'),
        sa.Column('current_stock', sa.Numeric(precision=12, scale=2), nullable=False, comment='Stock actual (puede quedar negativo)'),
        sa.Column('min_stock', sa.Numeric(precision=12, scale=2), nullable=False, comment='Stock mínimo para alerta'),
        sa.Column('cost_per_unit', sa.Numeric(precision=12, scale=2), nullable=False, comment='Costo unitario vigente'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_item_clinic', 'inventory_items', ['clinic_id'], unique=False)

    op.create_table('procedure_supplies',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('procedure_id', sa.UUID(), nullable=False),
        sa.Column('inventory_item_id', sa.UUID(), nullable=False),
        sa.Column('quantity_used', sa.Numeric(precision=12, scale=2), nullable=False, comment='Cantidad del insumo consumida por atención'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['procedure_id'], ['procedures.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('procedure_id', 'inventory_item_id', name='uq_procedure_supply_procedure_item')
    )
    op.create_index('idx_proc_supply_clinic_procedure', 'procedure_supplies', ['clinic_id', 'procedure_id'], unique=False)

    # 3. Citas
    op.create_table('appointments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('patient_id', sa.UUID(), nullable=False),
        sa.Column('professional_id', sa.UUID(), nullable=False),
        sa.Column('procedure_id', sa.UUID(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False, comment='Precio del procedimiento al momento de agendar'),
        sa.Column('status', sa.Enum('PENDING_APPROVAL', 'SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELED', name='appointmentstatus'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('paid', sa.Boolean(), nullable=False),
        sa.Column('stock_deducted', sa.Boolean(), nullable=False),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('external_calendar_event_id', sa.String(length=255), nullable=True, comment='ID del evento en Google Calendar'),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['procedure_id'], ['procedures.id'], ),
        sa.ForeignKeyConstraint(['professional_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_appointment_clinic_date', 'appointments', ['clinic_id', 'start_time'], unique=False)
    op.create_index('idx_appointment_professional_date', 'appointments', ['professional_id', 'start_time'], unique=False)
    op.create_index('idx_appointment_clinic_paid', 'appointments', ['clinic_id', 'paid'], unique=False)
    op.create_index('idx_appointment_status', 'appointments', ['clinic_id', 'status'], unique=False)

    # 4. Kardex y ledger
    op.create_table('stock_movements',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('inventory_item_id', sa.UUID(), nullable=False, comment='Artículo afectado'),
        sa.Column('appointment_id', sa.UUID(), nullable=True, comment='Cita que originó el consumo (null en movimientos manuales)'),
        sa.Column('created_by', sa.UUID(), nullable=True, comment='Usuario que registró el movimiento'),
        sa.Column('type', sa.Enum('IN', 'OUT', 'ADJUSTMENT', name='stockmovementtype'), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=2), nullable=False, comment='Cantidad (siempre positiva)'),
        sa.Column('stock_before', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('stock_after', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', sa.String(length=300), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', 'inventory_item_id', name='uq_stock_mov_appointment_item')
    )
    op.create_index('idx_stock_mov_item', 'stock_movements', ['inventory_item_id'], unique=False)
    op.create_index('idx_stock_mov_clinic_date', 'stock_movements', ['clinic_id', 'created_at'], unique=False)

    op.create_table('transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, comment='Fecha contable (la de la cita en asientos regenerados)'),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='Monto (siempre positivo)'),
        sa.Column('type', sa.Enum('INCOME', 'EXPENSE', name='transactiontype'), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('status', sa.Enum('PAID', 'PENDING', name='transactionstatus'), nullable=False),
        sa.Column('payment_method', sa.Enum('CASH', 'CREDIT_CARD', 'DEBIT_CARD', 'PIX', 'TRANSFER', 'OTHER', name='paymentmethod'), nullable=True),
        sa.Column('appointment_id', sa.UUID(), nullable=True),
        sa.Column('patient_id', sa.UUID(), nullable=True),
        sa.Column('professional_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['professional_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', 'type', 'category', name='uq_transaction_appointment_type_category')
    )
    op.create_index('idx_transaction_clinic_date', 'transactions', ['clinic_id', 'date'], unique=False)
    op.create_index('idx_transaction_appointment', 'transactions', ['appointment_id'], unique=False)

    # 5. Auditoría y avisos
    op.create_table('audit_log',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=True),
        sa.Column('entity', sa.String(length=50), nullable=False, comment='Nombre de la entidad: appointment, transaction, etc.'),
        sa.Column('entity_id', sa.String(length=36), nullable=False, comment='UUID del registro afectado'),
        sa.Column('action', sa.String(length=30), nullable=False, comment='create, update, status_change, payment, backfill, etc.'),
        sa.Column('old_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Snapshot del registro antes del cambio'),
        sa.Column('new_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Snapshot del registro después del cambio'),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_log_action'), 'audit_log', ['action'], unique=False)
    op.create_index(op.f('ix_audit_log_clinic_id'), 'audit_log', ['clinic_id'], unique=False)
    op.create_index(op.f('ix_audit_log_entity'), 'audit_log', ['entity'], unique=False)
    op.create_index(op.f('ix_audit_log_user_id'), 'audit_log', ['user_id'], unique=False)

    op.create_table('notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('type', sa.Enum('INFO', 'WARNING', name='notificationtype'), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_notification_clinic_read', 'notifications', ['clinic_id', 'is_read'], unique=False)

    # 6. RLS: cada clínica solo ve sus filas (app.clinic_id lo setea la API)
    for table in (
        'patients', 'procedures', 'inventory_items', 'procedure_supplies',
        'appointments', 'stock_movements', 'transactions', 'audit_log', 'notifications',
    ):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            f"USING (clinic_id = current_setting('app.clinic_id', true)::uuid)"
        )


def downgrade() -> None:
    for table in (
        'patients', 'procedures', 'inventory_items', 'procedure_supplies',
        'appointments', 'stock_movements', 'transactions', 'audit_log', 'notifications',
    ):
        op.execute(f'DROP POLICY IF EXISTS tenant_isolation ON {table}')

    op.drop_index('idx_notification_clinic_read', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_audit_log_user_id'), table_name='audit_log')
    op.drop_index(op.f('ix_audit_log_entity'), table_name='audit_log')
    op.drop_index(op.f('ix_audit_log_clinic_id'), table_name='audit_log')
    op.drop_index(op.f('ix_audit_log_action'), table_name='audit_log')
    op.drop_table('audit_log')
    op.drop_index('idx_transaction_appointment', table_name='transactions')
    op.drop_index('idx_transaction_clinic_date', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('idx_stock_mov_clinic_date', table_name='stock_movements')
    op.drop_index('idx_stock_mov_item', table_name='stock_movements')
    op.drop_table('stock_movements')
    op.drop_index('idx_appointment_status', table_name='appointments')
    op.drop_index('idx_appointment_clinic_paid', table_name='appointments')
    op.drop_index('idx_appointment_professional_date', table_name='appointments')
    op.drop_index('idx_appointment_clinic_date', table_name='appointments')
    op.drop_table('appointments')
    op.drop_index('idx_proc_supply_clinic_procedure', table_name='procedure_supplies')
    op.drop_table('procedure_supplies')
    op.drop_index('idx_item_clinic', table_name='inventory_items')
    op.drop_table('inventory_items')
    op.drop_index('idx_procedure_clinic', table_name='procedures')
    op.drop_table('procedures')
    op.drop_index(op.f('ix_patients_clinic_id'), table_name='patients')
    op.drop_table('patients')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_clinic_id'), table_name='users')
    op.drop_table('users')
    op.drop_table('clinics')

    for enum_name in (
        'notificationtype', 'paymentmethod', 'transactionstatus', 'transactiontype',
        'stockmovementtype', 'appointmentstatus', 'userrole',
    ):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
