"""business_hours_unavailability

Revision ID: 8c41e0d5a2f7
Revises: 3f9a1c2b7d10
Create Date: 2026-10-19 16:40:02.518334

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '8c41e0d5a2f7'
down_revision: Union[str, None] = '3f9a1c2b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('clinics', sa.Column(
        'business_hours', postgresql.JSONB(astext_type=sa.Text()), nullable=True,
        comment='Horario por día de la semana; null = sin restricción'
    ))

    op.create_table('unavailability_rules',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('clinic_id', sa.UUID(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('dates', postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment='Fechas locales YYYY-MM-DD'),
        sa.Column('professional_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment='UUIDs afectados; vacío = todos'),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_unavailability_clinic', 'unavailability_rules', ['clinic_id'], unique=False)

    op.execute('ALTER TABLE unavailability_rules ENABLE ROW LEVEL SECURITY')
    op.execute(
        "CREATE POLICY tenant_isolation ON unavailability_rules "
        "USING (clinic_id = current_setting('app.clinic_id', true)::uuid)"
    )


def downgrade() -> None:
    op.execute('DROP POLICY IF EXISTS tenant_isolation ON unavailability_rules')
    op.drop_index('idx_unavailability_clinic', table_name='unavailability_rules')
    op.drop_table('unavailability_rules')
    op.drop_column('clinics', 'business_hours')
