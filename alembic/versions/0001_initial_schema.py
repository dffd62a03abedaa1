"""initial lottery schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("organizer_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_entrants", sa.Integer(), nullable=True),
        sa.Column("number_of_winners", sa.Integer(), nullable=True),
        sa.Column("entrant_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('DRAFT','OPEN','CLOSED','DRAWN','COMPLETED','CANCELLED')",
            name=op.f("ck_events_status_enum"),
        ),
        sa.CheckConstraint(
            "entrant_count >= 0", name=op.f("ck_events_entrant_count_non_negative")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_events")),
    )
    op.create_index("ix_events_status", "events", ["status"], unique=False)
    op.create_index(
        op.f("ix_events_organizer_id"), "events", ["organizer_id"], unique=False
    )

    op.create_table(
        "entrant_profiles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("entrant_id", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column(
            "notification_opt_out",
            sa.Boolean(),
            server_default=sa.false(),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_entrant_profiles")),
        sa.UniqueConstraint("entrant_id", name=op.f("uq_entrant_profiles_entrant_id")),
    )

    op.create_table(
        "waiting_list_entries",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("entrant_id", sa.String(length=128), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("invited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("join_latitude", sa.Float(), nullable=True),
        sa.Column("join_longitude", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_waiting_list_entries_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_waiting_list_entries")),
        sa.UniqueConstraint("event_id", "entrant_id", name="uq_waiting_list_entrant"),
    )
    op.create_index(
        "ix_waiting_list_event_joined",
        "waiting_list_entries",
        ["event_id", "joined_at"],
        unique=False,
    )

    op.create_table(
        "decisions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("entrant_id", sa.String(length=128), nullable=False),
        sa.Column("entry_id", ID_TYPE, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('PENDING','INVITED','ACCEPTED','DECLINED','LOST','CANCELLED')",
            name=op.f("ck_decisions_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_decisions_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["entry_id"],
            ["waiting_list_entries.id"],
            name=op.f("fk_decisions_entry_id_waiting_list_entries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_decisions")),
        sa.UniqueConstraint("event_id", "entrant_id", name="uq_decision_entrant"),
        sa.UniqueConstraint("entry_id", name="uq_decision_entry"),
    )
    op.create_index(
        "ix_decisions_event_status", "decisions", ["event_id", "status"], unique=False
    )
    op.create_index("ix_decisions_entrant", "decisions", ["entrant_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("recipient_id", sa.String(length=128), nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_notifications_event_id_events"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notifications")),
    )
    op.create_index(
        "ix_notifications_recipient_created",
        "notifications",
        ["recipient_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "lottery_draws",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("seed", sa.String(length=64), nullable=False),
        sa.Column("candidate_ids", sa.JSON(), nullable=False),
        sa.Column("winner_ids", sa.JSON(), nullable=False),
        sa.Column("winners_count", sa.Integer(), nullable=False),
        sa.Column("losers_count", sa.Integer(), nullable=False),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_lottery_draws_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_draws")),
        sa.UniqueConstraint("event_id", name="uq_lottery_draw_event"),
    )


def downgrade() -> None:
    op.drop_table("lottery_draws")
    op.drop_index("ix_notifications_recipient_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_decisions_entrant", table_name="decisions")
    op.drop_index("ix_decisions_event_status", table_name="decisions")
    op.drop_table("decisions")
    op.drop_index("ix_waiting_list_event_joined", table_name="waiting_list_entries")
    op.drop_table("waiting_list_entries")
    op.drop_table("entrant_profiles")
    op.drop_index(op.f("ix_events_organizer_id"), table_name="events")
    op.drop_index("ix_events_status", table_name="events")
    op.drop_table("events")
