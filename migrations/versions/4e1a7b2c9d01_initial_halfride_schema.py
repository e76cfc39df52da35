"""initial halfride schema

Revision ID: 4e1a7b2c9d01
Revises:
Create Date: 2026-10-19 09:12:41.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4e1a7b2c9d01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, airports, flights, listings, groups, chat and notification tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(30), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("first_name", sa.String(100), nullable=False),
            sa.Column("last_name", sa.String(100), nullable=False),
            sa.Column("dob", sa.Date(), nullable=True),
            sa.Column("is_female", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("tags_json", sa.Text(), nullable=True),
            sa.Column("photo_key", sa.String(512), nullable=True),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("session_jti_hash", sa.String(64), nullable=True),
            sa.Column("session_updated_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_username", sa.String(30), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )

    if "airports" not in existing_tables:
        op.create_table(
            "airports",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("iata_code", sa.String(3), nullable=False, unique=True),
            sa.Column("icao_code", sa.String(4), nullable=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("city", sa.String(128), nullable=True),
            sa.Column("country", sa.String(128), nullable=True),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "airport_terminals" not in existing_tables:
        op.create_table(
            "airport_terminals",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("airport_id", sa.Integer(), sa.ForeignKey("airports.id", ondelete="CASCADE"), nullable=False),
            sa.Column("code", sa.String(20), nullable=False),
            sa.Column("name", sa.String(128), nullable=False),
            sa.UniqueConstraint("airport_id", "code", name="uq_airport_terminals_airport_code"),
        )
        op.create_index("idx_airport_terminals_airport", "airport_terminals", ["airport_id"])

    if "flight_details" not in existing_tables:
        op.create_table(
            "flight_details",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("flight_key", sa.String(64), nullable=False, unique=True),
            sa.Column("carrier", sa.String(8), nullable=False),
            sa.Column("flight_number", sa.String(16), nullable=False),
            sa.Column("flight_date", sa.Date(), nullable=False),
            sa.Column("eta_fetched_at", sa.DateTime(), nullable=True),
            sa.Column("flight_data_json", sa.Text(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending_initial_fetch"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_flight_details_date", "flight_details", ["flight_date"])

    if "ride_groups" not in existing_tables:
        op.create_table(
            "ride_groups",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(50), nullable=True),
            sa.Column("flight_arrival_airport", sa.String(3), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_ride_groups_airport", "ride_groups", ["flight_arrival_airport"])

    if "group_members" not in existing_tables:
        op.create_table(
            "group_members",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("ride_groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("joined_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        )
        op.create_index("idx_group_members_user", "group_members", ["user_id"])

    if "group_join_requests" not in existing_tables:
        op.create_table(
            "group_join_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("ride_groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("group_id", "user_id", name="uq_group_join_requests_group_user"),
        )

    if "traveller_listings" not in existing_tables:
        op.create_table(
            "traveller_listings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "flight_id", sa.Integer(), sa.ForeignKey("flight_details.id", ondelete="RESTRICT"), nullable=False
            ),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("flight_arrival", sa.String(3), nullable=False),
            sa.Column("flight_departure", sa.String(8), nullable=True),
            sa.Column("terminal", sa.String(20), nullable=False),
            sa.Column("destination_address", sa.Text(), nullable=True),
            sa.Column("destination_place_id", sa.String(255), nullable=True),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("ride_groups.id", ondelete="SET NULL"), nullable=True),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ready_to_onboard", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ready_to_onboard_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "flight_id", name="uq_traveller_listings_user_flight"),
        )
        op.create_index(
            "idx_traveller_listings_airport_active", "traveller_listings", ["flight_arrival", "is_completed"]
        )
        op.create_index("idx_traveller_listings_user_active", "traveller_listings", ["user_id", "is_completed"])
        op.create_index("idx_traveller_listings_group", "traveller_listings", ["group_id"])

    if "connection_requests" not in existing_tables:
        op.create_table(
            "connection_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "listing_id",
                sa.Integer(),
                sa.ForeignKey("traveller_listings.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("requester_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("listing_id", "requester_user_id", name="uq_connection_requests_listing_requester"),
        )
        op.create_index("idx_connection_requests_requester", "connection_requests", ["requester_user_id"])

    if "group_messages" not in existing_tables:
        op.create_table(
            "group_messages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("ride_groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(16), nullable=False, server_default="user"),
            sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("sender_display_name", sa.String(128), nullable=True),
            sa.Column("sender_photo_url", sa.String(512), nullable=True),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("deleted_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_group_messages_group_created", "group_messages", ["group_id", "created_at", "id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "recipient_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("type", sa.String(64), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("data_json", sa.Text(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index(
            "idx_notifications_recipient_created", "notifications", ["recipient_user_id", "created_at"]
        )
        op.create_index("idx_notifications_recipient_unread", "notifications", ["recipient_user_id", "is_read"])


def downgrade() -> None:
    """Drop every table created in upgrade()."""
    for table in (
        "notifications",
        "group_messages",
        "connection_requests",
        "traveller_listings",
        "group_join_requests",
        "group_members",
        "ride_groups",
        "flight_details",
        "airport_terminals",
        "airports",
        "audit_events",
        "users",
    ):
        op.drop_table(table)
