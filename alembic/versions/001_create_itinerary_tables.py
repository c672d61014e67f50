"""Create itinerary tables

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Routes table
    op.create_table(
        'itinerary_routes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Europe/Berlin'),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('default_arrival_time', sa.Time(), nullable=True),
        sa.Column('default_departure_time', sa.Time(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Stops table
    op.create_table(
        'itinerary_route_stops',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('route_id', sa.String(36), sa.ForeignKey('itinerary_routes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('place_id', sa.String(100), nullable=False),
        sa.Column('place_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lon', sa.Float(), nullable=True),
        sa.Column('position_index', sa.Integer(), nullable=False),
        sa.Column('kind', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('timezone', sa.String(64), nullable=True),
        sa.Column('planned_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('planned_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stay_nights', sa.Integer(), nullable=True),
        sa.Column('stay_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('start_locked', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('end_locked', sa.Boolean(), nullable=False, server_default='false'),
        sa.UniqueConstraint('route_id', 'position_index', name='uq_route_stops_route_position'),
    )
    op.create_index('ix_itinerary_route_stops_place_id', 'itinerary_route_stops', ['place_id'])
    op.create_index('ix_route_stops_route_start', 'itinerary_route_stops', ['route_id', 'planned_start'])

    # Legs table
    op.create_table(
        'itinerary_route_legs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('route_id', sa.String(36), sa.ForeignKey('itinerary_routes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_stop_id', sa.String(36), sa.ForeignKey('itinerary_route_stops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('to_stop_id', sa.String(36), sa.ForeignKey('itinerary_route_stops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position_index', sa.Integer(), nullable=False),
        sa.Column('distance_meters', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('geometry', sa.JSON(), nullable=True),
        sa.Column('provider', sa.String(50), nullable=False, server_default='OSRM'),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('planned_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('planned_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('needs_routing', sa.Boolean(), nullable=False, server_default='false'),
    )
    op.create_index('ix_route_legs_route_position', 'itinerary_route_legs', ['route_id', 'position_index'])
    op.create_index('ix_route_legs_needs_routing', 'itinerary_route_legs', ['needs_routing'])


def downgrade() -> None:
    op.drop_index('ix_route_legs_needs_routing', table_name='itinerary_route_legs')
    op.drop_index('ix_route_legs_route_position', table_name='itinerary_route_legs')
    op.drop_table('itinerary_route_legs')
    op.drop_index('ix_route_stops_route_start', table_name='itinerary_route_stops')
    op.drop_index('ix_itinerary_route_stops_place_id', table_name='itinerary_route_stops')
    op.drop_table('itinerary_route_stops')
    op.drop_table('itinerary_routes')
