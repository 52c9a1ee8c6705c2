"""Initial inventory import schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "location",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("province", sa.String(100), nullable=False),
        sa.Column("country", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("city", "province", "country", name="uq_location_city_province_country"),
    )
    op.create_index("ix_location_city", "location", ["city"])

    op.create_table(
        "asset",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("asset_tag", sa.String(100), nullable=False),
        sa.Column("serial_number", sa.String(100), unique=True),
        sa.Column("asset_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("make", sa.String(100)),
        sa.Column("model", sa.String(200)),
        sa.Column("specifications", sa.Text),
        sa.Column("assigned_to_id", sa.String(100)),
        sa.Column("assigned_to_aad_id", sa.String(200)),
        sa.Column("department_id", sa.String(100)),
        sa.Column("location_id", sa.Uuid, sa.ForeignKey("location.id", ondelete="SET NULL")),
        sa.Column("vendor_id", sa.String(100)),
        sa.Column("purchase_date", sa.DateTime(timezone=True)),
        sa.Column("purchase_price", sa.Float),
        sa.Column("warranty_start_date", sa.DateTime(timezone=True)),
        sa.Column("warranty_end_date", sa.DateTime(timezone=True)),
        sa.Column("warranty_notes", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("created_by_id", sa.String(100)),
        sa.Column("updated_by_id", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_asset_asset_tag", "asset", ["asset_tag"], unique=True)
    op.create_index("ix_asset_asset_type", "asset", ["asset_type"])
    op.create_index("ix_asset_status", "asset", ["status"])
    op.create_index("ix_asset_location_id", "asset", ["location_id"])

    op.create_table(
        "external_source_link",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("asset_id", sa.Uuid, sa.ForeignKey("asset.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_system", sa.String(30), nullable=False),
        sa.Column("external_id", sa.String(100), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_present", sa.Boolean, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("source_system", "external_id", name="uq_source_link_system_external_id"),
    )
    op.create_index("ix_external_source_link_asset_id", "external_source_link", ["asset_id"])
    op.create_index("ix_external_source_link_source_system", "external_source_link", ["source_system"])

    op.create_table(
        "custom_field",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("field_type", sa.String(50), nullable=False),
        sa.Column("is_required", sa.Boolean, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("options_json", sa.JSON),
        *_timestamps(),
    )

    op.create_table(
        "custom_field_value",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("asset_id", sa.Uuid, sa.ForeignKey("asset.id", ondelete="CASCADE"), nullable=False),
        sa.Column("field_id", sa.Uuid, sa.ForeignKey("custom_field.id", ondelete="CASCADE"), nullable=False),
        sa.Column("value", sa.Text, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("asset_id", "field_id", name="uq_cfv_asset_field"),
    )
    op.create_index("ix_custom_field_value_asset_id", "custom_field_value", ["asset_id"])
    op.create_index("ix_custom_field_value_field_id", "custom_field_value", ["field_id"])

    op.create_table(
        "workload_category",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "workload_category_rule",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "category_id", sa.Uuid,
            sa.ForeignKey("workload_category.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("source_field", sa.String(200), nullable=False),
        sa.Column("operator", sa.String(20), nullable=False),
        sa.Column("value", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_workload_category_rule_category_id", "workload_category_rule", ["category_id"])
    op.create_index("ix_workload_category_rule_priority", "workload_category_rule", ["priority"])

    op.create_table(
        "asset_workload_category",
        sa.Column("asset_id", sa.Uuid, sa.ForeignKey("asset.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "category_id", sa.Uuid,
            sa.ForeignKey("workload_category.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Uuid, nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("changes_json", sa.JSON),
        sa.Column("user_id", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_activity_log_entity_type", "activity_log", ["entity_type"])
    op.create_index("ix_activity_log_entity_id", "activity_log", ["entity_id"])

    op.create_table(
        "import_sync_run",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("source_system", sa.String(30), nullable=False),
        sa.Column("is_full_snapshot", sa.Boolean, nullable=False),
        sa.Column("initiated_by", sa.String(100)),
        sa.Column("session_id", sa.String(100)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("stats_json", sa.JSON),
        sa.Column("error_message", sa.Text),
        *_timestamps(),
    )
    op.create_index("ix_import_sync_run_source_system", "import_sync_run", ["source_system"])
    op.create_index("ix_import_sync_run_session_id", "import_sync_run", ["session_id"])


def downgrade() -> None:
    op.drop_table("import_sync_run")
    op.drop_table("activity_log")
    op.drop_table("asset_workload_category")
    op.drop_table("workload_category_rule")
    op.drop_table("workload_category")
    op.drop_table("custom_field_value")
    op.drop_table("custom_field")
    op.drop_table("external_source_link")
    op.drop_table("asset")
    op.drop_table("location")
