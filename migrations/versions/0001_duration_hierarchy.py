"""Training catalogue hierarchy with stored durations"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_duration_hierarchy"
down_revision = None
branch_labels = None
depends_on = None


def _node_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    ]


def upgrade() -> None:
    op.create_table(
        "formation",
        *_node_columns(),
        sa.CheckConstraint("duration_minutes >= 0", name="chk_formation_duration_non_negative"),
    )

    op.create_table(
        "module",
        *_node_columns(),
        sa.Column("formation_id", sa.Integer(), sa.ForeignKey("formation.id", ondelete="CASCADE")),
        sa.CheckConstraint("duration_minutes >= 0", name="chk_module_duration_non_negative"),
    )

    op.create_table(
        "chapter",
        *_node_columns(),
        sa.Column("module_id", sa.Integer(), sa.ForeignKey("module.id", ondelete="CASCADE")),
        sa.CheckConstraint("duration_minutes >= 0", name="chk_chapter_duration_non_negative"),
    )

    op.create_table(
        "course",
        *_node_columns(),
        sa.Column("chapter_id", sa.Integer(), sa.ForeignKey("chapter.id", ondelete="CASCADE")),
        sa.CheckConstraint("duration_minutes >= 0", name="chk_course_duration_non_negative"),
    )

    for table in ("formation", "module", "chapter", "course"):
        op.create_index(f"ix_{table}_is_active", table, ["is_active"])


def downgrade() -> None:
    for table in ("course", "chapter", "module", "formation"):
        op.drop_index(f"ix_{table}_is_active", table_name=table)
        op.drop_table(table)
