"""Initial metasync schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-09-14 09:12:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ENUM = sa.String(length=64)


def _timestamp(name: str, *, nullable: bool) -> sa.Column[object]:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "metaverse_object",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("origin", _ENUM, nullable=False),
        sa.Column("attribute_values", sa.Text(), nullable=False),
        sa.Column("pending_attribute_value_additions", sa.Text(), nullable=False),
        sa.Column("pending_attribute_value_removals", sa.Text(), nullable=False),
        _timestamp("last_connector_disconnected_date", nullable=True),
        sa.Column("deletion_initiated_by_type", _ENUM, nullable=True),
        sa.Column("deletion_initiated_by_id", sa.String(), nullable=True),
        sa.Column("deletion_initiated_by_name", sa.String(), nullable=True),
        _timestamp("created", nullable=False),
        _timestamp("last_updated", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_metaverse_object"),
    )
    op.create_index("ix_metaverse_object_type", "metaverse_object", ["type"])

    op.create_table(
        "connected_system_object",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("connected_system_id", sa.Integer(), nullable=False),
        sa.Column("type_id", sa.String(), nullable=False),
        sa.Column("external_id_attribute", sa.String(), nullable=True),
        sa.Column("secondary_external_id_attribute", sa.String(), nullable=True),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("join_type", _ENUM, nullable=False),
        sa.Column("metaverse_object_id", sa.Uuid(), nullable=True),
        _timestamp("date_joined", nullable=True),
        sa.Column("attribute_values", sa.Text(), nullable=False),
        sa.Column("pending_attribute_value_additions", sa.Text(), nullable=False),
        sa.Column("pending_attribute_value_removals", sa.Text(), nullable=False),
        _timestamp("created", nullable=False),
        _timestamp("last_updated", nullable=True),
        sa.ForeignKeyConstraint(
            ["metaverse_object_id"],
            ["metaverse_object.id"],
            name="fk_connected_system_object_metaverse_object_id_metaverse_object",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_connected_system_object"),
    )
    op.create_index(
        "ix_connected_system_object_system",
        "connected_system_object",
        ["connected_system_id", "id"],
    )
    op.create_index(
        "ix_connected_system_object_metaverse_object",
        "connected_system_object",
        ["metaverse_object_id"],
    )

    op.create_table(
        "pending_export",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("connected_system_id", sa.Integer(), nullable=False),
        sa.Column("connected_system_object_id", sa.Uuid(), nullable=False),
        sa.Column("change_type", _ENUM, nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("attribute_value_changes", sa.Text(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column("source_metaverse_object_id", sa.Uuid(), nullable=True),
        _timestamp("created_at", nullable=False),
        sa.ForeignKeyConstraint(
            ["connected_system_object_id"],
            ["connected_system_object.id"],
            name="fk_pending_export_connected_system_object_id_connected_system_object",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_pending_export"),
    )
    op.create_index(
        "ix_pending_export_connected_system_object",
        "pending_export",
        ["connected_system_object_id"],
    )

    op.create_table(
        "activity",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("connected_system_id", sa.Integer(), nullable=False),
        sa.Column("run_type", _ENUM, nullable=False),
        sa.Column("status", _ENUM, nullable=False),
        sa.Column("initiated_by_type", _ENUM, nullable=False),
        sa.Column("initiated_by_id", sa.String(), nullable=True),
        sa.Column("initiated_by_name", sa.String(), nullable=True),
        _timestamp("started_at", nullable=False),
        _timestamp("completed_at", nullable=True),
        sa.Column("objects_to_process", sa.Integer(), nullable=False),
        sa.Column("objects_processed", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_activity"),
    )

    op.create_table(
        "run_profile_execution_item",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("activity_id", sa.Uuid(), nullable=True),
        sa.Column("connected_system_object_id", sa.Uuid(), nullable=True),
        sa.Column("object_change_type", _ENUM, nullable=False),
        sa.Column("error_type", _ENUM, nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_stack_trace", sa.Text(), nullable=True),
        sa.Column("attribute_flow_count", sa.Integer(), nullable=True),
        _timestamp("created_at", nullable=False),
        sa.ForeignKeyConstraint(
            ["activity_id"],
            ["activity.id"],
            name="fk_run_profile_execution_item_activity_id_activity",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_run_profile_execution_item"),
    )
    op.create_index(
        "ix_run_profile_execution_item_activity",
        "run_profile_execution_item",
        ["activity_id"],
    )

    op.create_table(
        "metaverse_object_change",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("metaverse_object_id", sa.Uuid(), nullable=True),
        sa.Column("change_type", _ENUM, nullable=False),
        _timestamp("change_time", nullable=False),
        sa.Column("initiated_by_type", _ENUM, nullable=False),
        sa.Column("initiated_by_id", sa.String(), nullable=True),
        sa.Column("initiated_by_name", sa.String(), nullable=True),
        sa.Column("execution_item_id", sa.Uuid(), nullable=True),
        sa.Column("attribute_changes", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_metaverse_object_change"),
    )
    op.create_index(
        "ix_metaverse_object_change_metaverse_object",
        "metaverse_object_change",
        ["metaverse_object_id"],
    )

    op.create_table(
        "connected_system_state",
        sa.Column("connected_system_id", sa.Integer(), nullable=False),
        _timestamp("last_delta_sync_completed_at", nullable=True),
        sa.PrimaryKeyConstraint("connected_system_id", name="pk_connected_system_state"),
    )


def downgrade() -> None:
    op.drop_table("connected_system_state")
    op.drop_index("ix_metaverse_object_change_metaverse_object", "metaverse_object_change")
    op.drop_table("metaverse_object_change")
    op.drop_index("ix_run_profile_execution_item_activity", "run_profile_execution_item")
    op.drop_table("run_profile_execution_item")
    op.drop_table("activity")
    op.drop_index("ix_pending_export_connected_system_object", "pending_export")
    op.drop_table("pending_export")
    op.drop_index("ix_connected_system_object_metaverse_object", "connected_system_object")
    op.drop_index("ix_connected_system_object_system", "connected_system_object")
    op.drop_table("connected_system_object")
    op.drop_index("ix_metaverse_object_type", "metaverse_object")
    op.drop_table("metaverse_object")
