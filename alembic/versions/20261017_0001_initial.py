"""sessions, settings and oauth tokens"""

from alembic import op
import sqlalchemy as sa


revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("sport", sa.String(length=16), nullable=False),
        sa.Column("origin", sa.String(length=16), nullable=False, server_default="planned"),
        sa.Column("type", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("structure", sa.JSON(), nullable=False),
        sa.Column("actual_km", sa.Float(), nullable=True),
        sa.Column("actual_elevation", sa.Integer(), nullable=True),
        sa.Column("strava_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("laps", sa.JSON(), nullable=True),
        sa.Column("average_heartrate", sa.Float(), nullable=True),
        sa.Column("max_heartrate", sa.Float(), nullable=True),
        sa.Column("average_watts", sa.Float(), nullable=True),
        sa.Column("max_watts", sa.Float(), nullable=True),
        sa.Column("average_cadence", sa.Float(), nullable=True),
        sa.Column("coach_feedback", sa.Text(), nullable=True),
        sa.Column("replaced_planned_title", sa.String(length=255), nullable=True),
        sa.Column("replaced_planned_description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("sport in ('cycling', 'running', 'strength')", name="ck_sessions_sport"),
        sa.CheckConstraint("origin in ('planned', 'actual')", name="ck_sessions_origin"),
        sa.CheckConstraint("duration_min >= 0", name="ck_sessions_duration"),
    )
    op.create_index("ix_sessions_sport", "sessions", ["sport"])
    op.create_index("ix_sessions_date", "sessions", ["date"])

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("theme", sa.String(length=40), nullable=False, server_default="dracula"),
        sa.Column("intervals_athlete_id", sa.String(length=60), nullable=True),
        sa.Column("intervals_api_key", sa.String(length=255), nullable=True),
        sa.Column("training_phases", sa.JSON(), nullable=False),
        sa.Column("training_objectives", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("id = 1", name="ck_user_settings_single_row"),
    )

    op.create_table(
        "oauth_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=20), nullable=False, unique=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("provider in ('strava', 'google')", name="ck_oauth_tokens_provider"),
    )


def downgrade() -> None:
    op.drop_table("oauth_tokens")
    op.drop_table("user_settings")
    op.drop_index("ix_sessions_date", table_name="sessions")
    op.drop_index("ix_sessions_sport", table_name="sessions")
    op.drop_table("sessions")
