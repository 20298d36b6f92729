"""create journals, entries and versions tables

Revision ID: 0001_create_journal_schema
Revises: 
Create Date: 2025-12-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


revision = "0001_create_journal_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "journals",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_sub", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("idx_journals_user_sub", "journals", ["user_sub"])

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "journal_id",
            sa.String(length=36),
            sa.ForeignKey("journals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("s3_key", sa.String(length=500), nullable=False),
        sa.Column("git_commit_hash", sa.String(length=40), nullable=True),
        sa.Column("word_count", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("journal_id", "entry_date", name="journal_entries_journal_date_key"),
    )
    op.create_index("idx_entries_journal_id", "journal_entries", ["journal_id"])
    op.create_index("idx_entries_date", "journal_entries", ["entry_date"])

    op.create_table(
        "journal_versions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("journal_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("commit_hash", sa.String(length=40), nullable=False),
        sa.Column("commit_message", sa.Text(), nullable=True),
        sa.Column("author_name", sa.String(length=255), nullable=True),
        sa.Column("author_email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("entry_id", "commit_hash", name="journal_versions_entry_commit_key"),
    )
    op.create_index("idx_versions_entry_id", "journal_versions", ["entry_id"])


def downgrade() -> None:
    op.drop_index("idx_versions_entry_id", table_name="journal_versions")
    op.drop_table("journal_versions")
    op.drop_index("idx_entries_date", table_name="journal_entries")
    op.drop_index("idx_entries_journal_id", table_name="journal_entries")
    op.drop_table("journal_entries")
    op.drop_index("idx_journals_user_sub", table_name="journals")
    op.drop_table("journals")
