"""Initial schema - items and sensor_data tables

Revision ID: 0001
Revises:
Create Date: 2025-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create items table
    op.create_table(
        'items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create sensor_data table; every sensor column is nullable (NULL = unknown)
    op.create_table(
        'sensor_data',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ts', sa.DateTime(timezone=True), nullable=False),
        sa.Column('device', sa.String(), nullable=False),
        sa.Column('wifi_rssi', sa.Integer(), nullable=True),
        sa.Column('bno_ok', sa.Boolean(), nullable=True),
        sa.Column('heading_deg', sa.Float(), nullable=True),
        sa.Column('roll_deg', sa.Float(), nullable=True),
        sa.Column('pitch_deg', sa.Float(), nullable=True),
        sa.Column('temp_c', sa.Float(), nullable=True),
        sa.Column('accel_x', sa.Float(), nullable=True),
        sa.Column('accel_y', sa.Float(), nullable=True),
        sa.Column('accel_z', sa.Float(), nullable=True),
        sa.Column('gyro_x', sa.Float(), nullable=True),
        sa.Column('gyro_y', sa.Float(), nullable=True),
        sa.Column('gyro_z', sa.Float(), nullable=True),
        sa.Column('mag_x', sa.Float(), nullable=True),
        sa.Column('mag_y', sa.Float(), nullable=True),
        sa.Column('mag_z', sa.Float(), nullable=True),
        sa.Column('calib_sys', sa.Integer(), nullable=True),
        sa.Column('calib_gyro', sa.Integer(), nullable=True),
        sa.Column('calib_accel', sa.Integer(), nullable=True),
        sa.Column('calib_mag', sa.Integer(), nullable=True),
        sa.Column('ultrasonic_cm', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sensor_data_ts', 'sensor_data', ['ts'], unique=False)
    op.create_index('ix_sensor_data_device', 'sensor_data', ['device'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_sensor_data_device', table_name='sensor_data')
    op.drop_index('ix_sensor_data_ts', table_name='sensor_data')
    op.drop_table('sensor_data')
    op.drop_table('items')
