"""Add facilities, covenants and notifications"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_facilities_covenants"
down_revision = "0001_orgs_users_roles"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "facilities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("fund_name", sa.String(length=255), nullable=False),
        sa.Column("lender_name", sa.String(length=255), nullable=False),
        sa.Column("principal_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("outstanding_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="ACTIVE"),
        sa.Column("gp_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("origination_date", sa.Date(), nullable=True),
        sa.Column("maturity_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["gp_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("principal_amount >= 0", name="ck_facility_principal_nonneg"),
        sa.CheckConstraint("outstanding_balance >= 0", name="ck_facility_outstanding_nonneg"),
    )
    op.create_index("ix_facilities_org_id", "facilities", ["org_id"])
    op.create_index("ix_facilities_org_owner", "facilities", ["org_id", "gp_user_id"])

    op.create_table(
        "covenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("covenant_type", sa.String(length=100), nullable=False),
        sa.Column("threshold_operator", sa.String(length=32), nullable=False),
        sa.Column("threshold_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("check_frequency", sa.String(length=32), nullable=False, server_default="quarterly"),
        sa.Column("next_check_date", sa.Date(), nullable=True),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("breach_notified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "threshold_operator IN ('less_than', 'less_than_equal', 'greater_than', 'greater_than_equal')",
            name="ck_covenant_threshold_operator",
        ),
        sa.CheckConstraint(
            "status IS NULL OR status IN ('compliant', 'warning', 'breach')",
            name="ck_covenant_status",
        ),
    )
    op.create_index("ix_covenants_facility_id", "covenants", ["facility_id"])
    op.create_index("ix_covenants_org_facility", "covenants", ["org_id", "facility_id"])
    op.create_index("ix_covenants_org_next_check", "covenants", ["org_id", "next_check_date"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False, server_default="info"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_entity_type", sa.String(length=50), nullable=True),
        sa.Column("related_entity_id", sa.String(length=255), nullable=True),
        sa.Column("action_url", sa.String(length=1024), nullable=True),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["orgs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_org_user_created", "notifications", ["org_id", "user_id", "created_at"])
    op.create_index("ix_notifications_related", "notifications", ["related_entity_type", "related_entity_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_related", table_name="notifications")
    op.drop_index("ix_notifications_org_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_covenants_org_next_check", table_name="covenants")
    op.drop_index("ix_covenants_org_facility", table_name="covenants")
    op.drop_index("ix_covenants_facility_id", table_name="covenants")
    op.drop_table("covenants")
    op.drop_index("ix_facilities_org_owner", table_name="facilities")
    op.drop_index("ix_facilities_org_id", table_name="facilities")
    op.drop_table("facilities")
