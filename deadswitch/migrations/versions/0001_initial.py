from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# Alembic identifiers
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "switches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("owner_email", sa.String(length=320), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("timer_seconds", sa.BigInteger(), nullable=False),
        sa.Column("warning_seconds", sa.BigInteger(), nullable=False),
        sa.Column("last_check_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("has_triggered", sa.Boolean(), nullable=False),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("trigger_message", sa.Text(), nullable=True),
        sa.Column("encrypted_payload", sa.LargeBinary(), nullable=True),
        sa.Column("payload_key", sa.LargeBinary(), nullable=True),
        sa.Column("has_payload", sa.Boolean(), nullable=False),
        sa.Column("delivery_status", sa.String(length=16), nullable=False),
        sa.Column("recipients_sent", sa.Integer(), nullable=False),
        sa.Column("recipients_failed", sa.Integer(), nullable=False),
        sa.Column("delivery_error", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_switches")),
    )
    op.create_index(op.f("ix_switches_owner_id"), "switches", ["owner_id"], unique=False)
    op.create_index(
        "ix_switches_eligible", "switches", ["is_enabled", "has_triggered", "next_deadline"], unique=False
    )

    op.create_table(
        "switch_recipients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("switch_id", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(length=320), nullable=False),
        sa.Column("channel", sa.String(length=8), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("personal_message", sa.Text(), nullable=True),
        sa.Column("content_filter", sa.String(length=200), nullable=True),
        sa.ForeignKeyConstraint(
            ["switch_id"], ["switches.id"],
            name=op.f("fk_switch_recipients_switch_id_switches"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_switch_recipients")),
    )
    op.create_index(op.f("ix_switch_recipients_switch_id"), "switch_recipients", ["switch_id"], unique=False)

    op.create_table(
        "switch_reminders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("switch_id", sa.Integer(), nullable=False),
        sa.Column("offset_seconds", sa.BigInteger(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["switch_id"], ["switches.id"],
            name=op.f("fk_switch_reminders_switch_id_switches"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_switch_reminders")),
        sa.UniqueConstraint("switch_id", "offset_seconds", name=op.f("uq_switch_reminders_switch_id")),
    )
    op.create_index(op.f("ix_switch_reminders_switch_id"), "switch_reminders", ["switch_id"], unique=False)


def downgrade():
    op.drop_index(op.f("ix_switch_reminders_switch_id"), table_name="switch_reminders")
    op.drop_table("switch_reminders")
    op.drop_index(op.f("ix_switch_recipients_switch_id"), table_name="switch_recipients")
    op.drop_table("switch_recipients")
    op.drop_index("ix_switches_eligible", table_name="switches")
    op.drop_index(op.f("ix_switches_owner_id"), table_name="switches")
    op.drop_table("switches")
