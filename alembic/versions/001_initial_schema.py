"""Initial schema.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # Create polling_stations table
    op.create_table(
        "polling_stations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("station_code", sa.String(length=50), nullable=False),
        sa.Column("station_name", sa.String(length=255), nullable=False),
        sa.Column("constituency", sa.String(length=255), nullable=False),
        sa.Column("parish", sa.String(length=100), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("coordinates", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_polling_stations_station_code"), "polling_stations", ["station_code"], unique=True)
    op.create_index(op.f("ix_polling_stations_constituency"), "polling_stations", ["constituency"], unique=False)
    op.create_index(op.f("ix_polling_stations_parish"), "polling_stations", ["parish"], unique=False)

    # Create profiles table
    op.create_table(
        "profiles",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=18), server_default="observer", nullable=False),
        sa.Column("verification_status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("parish", sa.String(length=100), nullable=True),
        sa.Column("deployment_parish", sa.String(length=100), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("assigned_station_id", sa.UUID(), nullable=True),
        sa.Column("trn", sa.String(length=32), nullable=True),
        sa.Column("bank_name", sa.String(length=255), nullable=True),
        sa.Column("bank_account_encrypted", sa.Text(), nullable=True),
        sa.Column("bank_routing_encrypted", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("unique_user_id", sa.String(length=6), nullable=True),
        sa.Column("identity_status", sa.String(length=16), nullable=True),
        sa.Column("identity_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("identity_confidence", sa.Float(), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("profile_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assigned_station_id"], ["polling_stations.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("unique_user_id"),
    )
    op.create_index(op.f("ix_profiles_email"), "profiles", ["email"], unique=True)
    op.create_index(op.f("ix_profiles_role"), "profiles", ["role"], unique=False)
    op.create_index(op.f("ix_profiles_verification_status"), "profiles", ["verification_status"], unique=False)
    op.create_index(op.f("ix_profiles_assigned_station_id"), "profiles", ["assigned_station_id"], unique=False)

    # Create observation_reports table
    op.create_table(
        "observation_reports",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("observer_id", sa.UUID(), nullable=False),
        sa.Column("station_id", sa.UUID(), nullable=True),
        sa.Column("report_text", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="submitted", nullable=False),
        sa.Column("location_data", sa.JSON(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["observer_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["station_id"], ["polling_stations.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_observation_reports_observer_id"), "observation_reports", ["observer_id"], unique=False)
    op.create_index(op.f("ix_observation_reports_station_id"), "observation_reports", ["station_id"], unique=False)
    op.create_index(op.f("ix_observation_reports_status"), "observation_reports", ["status"], unique=False)

    # Create communications table
    op.create_table(
        "communications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("campaign_name", sa.String(length=255), nullable=False),
        sa.Column("message_content", sa.Text(), nullable=False),
        sa.Column("communication_type", sa.String(length=16), server_default="sms", nullable=False),
        sa.Column("target_audience", sa.String(length=16), server_default="all", nullable=False),
        sa.Column("target_filter", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("sent_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("delivered_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("failed_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("sent_by", sa.UUID(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sent_by"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_communications_status"), "communications", ["status"], unique=False)

    # Create communication_logs table
    op.create_table(
        "communication_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("communication_id", sa.UUID(), nullable=False),
        sa.Column("recipient_id", sa.UUID(), nullable=True),
        sa.Column("recipient_address", sa.String(length=255), nullable=True),
        sa.Column("message_content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["communication_id"], ["communications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_communication_logs_communication_id"), "communication_logs", ["communication_id"], unique=False)

    # Create verification_documents table
    op.create_table(
        "verification_documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("observer_id", sa.UUID(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verified_by", sa.UUID(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["observer_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["verified_by"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_verification_documents_observer_id"), "verification_documents", ["observer_id"], unique=False)

    # Create identity_verifications table
    op.create_table(
        "identity_verifications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("session_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("verification_method", sa.String(length=16), server_default="document", nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("provider_response_encrypted", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_identity_verifications_user_id"), "identity_verifications", ["user_id"], unique=False)
    op.create_index(op.f("ix_identity_verifications_session_id"), "identity_verifications", ["session_id"], unique=True)
    op.create_index(op.f("ix_identity_verifications_status"), "identity_verifications", ["status"], unique=False)

    # Create chat_messages table
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("room", sa.String(length=255), nullable=False),
        sa.Column("sender_id", sa.UUID(), nullable=False),
        sa.Column("sender_name", sa.String(length=255), nullable=True),
        sa.Column("receiver_id", sa.UUID(), nullable=True),
        sa.Column("receiver_name", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), server_default="", nullable=False),
        sa.Column("type", sa.String(length=16), server_default="text", nullable=False),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=16), server_default="sent", nullable=False),
        sa.Column("edited", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("sent_at", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sender_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["receiver_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_chat_messages_client_id"), "chat_messages", ["client_id"], unique=True)
    op.create_index(op.f("ix_chat_messages_room"), "chat_messages", ["room"], unique=False)
    op.create_index(op.f("ix_chat_messages_sender_id"), "chat_messages", ["sender_id"], unique=False)
    op.create_index(op.f("ix_chat_messages_sent_at"), "chat_messages", ["sent_at"], unique=False)
    # History pages are read per room, newest first
    op.create_index("ix_chat_messages_room_sent_at", "chat_messages", ["room", "sent_at"], unique=False)

    # Create notifications table
    op.create_table(
        "notifications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_notifications_user_id"), "notifications", ["user_id"], unique=False)
    op.create_index(op.f("ix_notifications_read"), "notifications", ["read"], unique=False)


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("chat_messages")
    op.drop_table("identity_verifications")
    op.drop_table("verification_documents")
    op.drop_table("communication_logs")
    op.drop_table("communications")
    op.drop_table("observation_reports")
    op.drop_table("profiles")
    op.drop_table("polling_stations")
