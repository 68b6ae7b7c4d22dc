"""initial_ceodesk_schema

Create organisations, users, requests, approval rounds, collaboration,
announcements, executive messages, audit log, org settings and the
notification log.

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f70001"
down_revision = None
branch_labels = None
depends_on = None

_TS = sa.DateTime(timezone=True)


def _uuid(name, **kw):
    return sa.Column(name, sa.String(length=36), **kw)


def _org_fk():
    return sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE")


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            _uuid("id", nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", _TS, nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("role_code", sa.String(length=20), nullable=False, server_default="MANAGER"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", _TS, nullable=True),
            sa.Column("updated_at", _TS, nullable=True),
            _org_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("org_id", "email", name="uq_user_org_email"),
            sa.CheckConstraint("role_code IN ('MANAGER', 'CEO', 'ADMIN')", name="ck_users_role_code"),
        )
        op.create_index("ix_users_org_id", "users", ["org_id"])

    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("created_at", _TS, nullable=True),
            _org_fk(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
        )
        op.create_index("ix_categories_org_id", "categories", ["org_id"])

    if "requests" not in existing_tables:
        op.create_table(
            "requests",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority_code", sa.String(length=2), nullable=False, server_default="P3"),
            _uuid("category_id", nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("request_version", sa.Integer(), nullable=False, server_default="1"),
            _uuid("requester_id", nullable=False),
            sa.Column("created_at", _TS, nullable=False),
            sa.Column("updated_at", _TS, nullable=True),
            sa.Column("status_changed_at", _TS, nullable=True),
            sa.Column("submitted_at", _TS, nullable=True),
            sa.Column("approved_at", _TS, nullable=True),
            sa.Column("closed_at", _TS, nullable=True),
            sa.Column("last_activity_at", _TS, nullable=True),
            sa.Column("deleted_at", _TS, nullable=True),
            _uuid("deleted_by", nullable=True),
            sa.Column("deleted_reason", sa.String(length=500), nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('DRAFT', 'SUBMITTED', 'IN_REVIEW', 'APPROVED', 'REJECTED', 'CANCELLED', 'CLOSED')",
                name="ck_requests_status",
            ),
            sa.CheckConstraint(
                "priority_code IN ('P1', 'P2', 'P3', 'P4', 'P5')",
                name="ck_requests_priority_code",
            ),
            sa.CheckConstraint("request_version >= 1", name="ck_requests_version_positive"),
        )
        op.create_index("ix_requests_org_id", "requests", ["org_id"])
        op.create_index("ix_requests_requester_id", "requests", ["requester_id"])
        op.create_index("ix_requests_deleted_at", "requests", ["deleted_at"])
        op.create_index("ix_requests_org_status", "requests", ["org_id", "status"])
        op.create_index("ix_requests_org_created", "requests", ["org_id", "created_at"])

    if "approvals" not in existing_tables:
        op.create_table(
            "approvals",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("request_id", nullable=False),
            sa.Column("request_version", sa.Integer(), nullable=False),
            sa.Column("approval_round", sa.Integer(), nullable=False),
            sa.Column("decision", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("notes", sa.String(length=500), nullable=True),
            _uuid("decided_by", nullable=True),
            sa.Column("decided_at", _TS, nullable=True),
            sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("invalidated_at", _TS, nullable=True),
            sa.Column("invalidated_reason", sa.String(length=500), nullable=True),
            sa.Column("request_snapshot", sa.JSON(), nullable=False),
            _uuid("submitted_by", nullable=True),
            sa.Column("submitted_at", _TS, nullable=False),
            _org_fk(),
            sa.ForeignKeyConstraint(["request_id"], ["requests.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["decided_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id", "approval_round", name="uq_approvals_request_round"),
            sa.CheckConstraint("decision IN ('pending', 'approved', 'rejected')", name="ck_approvals_decision"),
            sa.CheckConstraint("approval_round >= 1", name="ck_approvals_round_positive"),
        )
        op.create_index("ix_approvals_org_id", "approvals", ["org_id"])
        op.create_index("ix_approvals_request_id", "approvals", ["request_id"])
        op.create_index("ix_approvals_org_decision", "approvals", ["org_id", "decision"])
        # At most one open round per request
        op.create_index(
            "uq_approvals_one_active_per_request",
            "approvals",
            ["request_id"],
            unique=True,
            postgresql_where=sa.text("decision = 'pending' AND is_valid IS TRUE"),
            sqlite_where=sa.text("decision = 'pending' AND is_valid = 1"),
        )

    if "request_comments" not in existing_tables:
        op.create_table(
            "request_comments",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("request_id", nullable=False),
            _uuid("author_id", nullable=True),
            sa.Column("body", sa.Text(), nullable=False, comment="HTML-escaped on write"),
            sa.Column("mentions", sa.JSON(), nullable=False),
            sa.Column("created_at", _TS, nullable=False),
            _org_fk(),
            sa.ForeignKeyConstraint(["request_id"], ["requests.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_request_comments_org_id", "request_comments", ["org_id"])
        op.create_index("ix_request_comments_request_created", "request_comments", ["request_id", "created_at"])

    if "request_watchers" not in existing_tables:
        op.create_table(
            "request_watchers",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("request_id", nullable=False),
            _uuid("watcher_id", nullable=False),
            sa.Column("watcher_role", sa.String(length=30), nullable=False, server_default="OBSERVER"),
            _uuid("added_by", nullable=True),
            sa.Column("created_at", _TS, nullable=False),
            _org_fk(),
            sa.ForeignKeyConstraint(["request_id"], ["requests.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["watcher_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["added_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id", "watcher_id", name="uq_request_watchers_request_user"),
            sa.CheckConstraint(
                "watcher_role IN ('OBSERVER', 'CONTRIBUTOR', 'ESCALATION_CONTACT')",
                name="ck_request_watchers_role",
            ),
        )
        op.create_index("ix_request_watchers_org_id", "request_watchers", ["org_id"])
        op.create_index("ix_request_watchers_request_id", "request_watchers", ["request_id"])
        op.create_index("ix_request_watchers_watcher_id", "request_watchers", ["watcher_id"])

    if "announcements" not in existing_tables:
        op.create_table(
            "announcements",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("announcement_type", sa.String(length=20), nullable=False, server_default="info"),
            sa.Column("target_scope", sa.String(length=20), nullable=False, server_default="all"),
            sa.Column("target_user_ids", sa.JSON(), nullable=False),
            sa.Column("require_acknowledgement", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sticky_until", _TS, nullable=True),
            _uuid("published_by", nullable=True),
            sa.Column("published_at", _TS, nullable=False),
            sa.Column("updated_at", _TS, nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["published_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_announcements_org_id", "announcements", ["org_id"])
        op.create_index("ix_announcements_org_published", "announcements", ["org_id", "published_at"])

    if "announcement_reads" not in existing_tables:
        op.create_table(
            "announcement_reads",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("announcement_id", nullable=False),
            _uuid("user_id", nullable=False),
            sa.Column("read_at", _TS, nullable=True),
            sa.Column("acknowledged_at", _TS, nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["announcement_id"], ["announcements.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("announcement_id", "user_id", name="uq_announcement_reads_user"),
        )
        op.create_index("ix_announcement_reads_org_id", "announcement_reads", ["org_id"])
        op.create_index("ix_announcement_reads_announcement_id", "announcement_reads", ["announcement_id"])

    if "executive_messages" not in existing_tables:
        op.create_table(
            "executive_messages",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            sa.Column("message_type", sa.String(length=20), nullable=False),
            sa.Column("context_type", sa.String(length=20), nullable=False),
            _uuid("context_id", nullable=True),
            _uuid("author_id", nullable=True),
            sa.Column("author_role", sa.String(length=20), nullable=False),
            sa.Column("subject", sa.String(length=200), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("recipient_ids", sa.JSON(), nullable=False),
            sa.Column("cc_user_ids", sa.JSON(), nullable=False),
            _uuid("parent_message_id", nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("sent_at", _TS, nullable=True),
            sa.Column("acknowledged_at", _TS, nullable=True),
            sa.Column("resolved_at", _TS, nullable=True),
            _uuid("resolved_by", nullable=True),
            sa.Column("created_at", _TS, nullable=False),
            sa.Column("updated_at", _TS, nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["resolved_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["parent_message_id"], ["executive_messages.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('draft', 'sent', 'acknowledged', 'resolved')",
                name="ck_executive_messages_status",
            ),
        )
        op.create_index("ix_executive_messages_org_id", "executive_messages", ["org_id"])
        op.create_index("ix_executive_messages_author_id", "executive_messages", ["author_id"])
        op.create_index("ix_executive_messages_org_status", "executive_messages", ["org_id", "status"])

    if "executive_message_reads" not in existing_tables:
        op.create_table(
            "executive_message_reads",
            _uuid("id", nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("message_id", nullable=False),
            _uuid("user_id", nullable=False),
            sa.Column("read_at", _TS, nullable=True),
            sa.Column("acknowledged_at", _TS, nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["message_id"], ["executive_messages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("message_id", "user_id", name="uq_executive_message_reads_user"),
        )
        op.create_index("ix_executive_message_reads_org_id", "executive_message_reads", ["org_id"])
        op.create_index("ix_executive_message_reads_message_id", "executive_message_reads", ["message_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            _uuid("org_id", nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            _uuid("entity_id", nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            _uuid("user_id", nullable=True),
            sa.Column("actor_role_code", sa.String(length=20), nullable=True),
            sa.Column("old_values", sa.JSON(), nullable=True),
            sa.Column("new_values", sa.JSON(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("correlation_id", sa.String(length=64), nullable=True),
            sa.Column("timestamp", _TS, nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_org_id", "audit_logs", ["org_id"])
        op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_org_ts", "audit_logs", ["org_id", "timestamp"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])

    if "org_settings" not in existing_tables:
        op.create_table(
            "org_settings",
            _uuid("org_id", nullable=False),
            sa.Column("max_attachment_mb", sa.Integer(), nullable=False, server_default="10"),
            sa.Column("auto_cancel_drafts_days", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("restore_window_days", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("audit_retention_days", sa.Integer(), nullable=False, server_default="365"),
            sa.Column("default_priority_code", sa.String(length=2), nullable=False, server_default="P3"),
            sa.Column("allow_manager_self_approve", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("require_approval_notes", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("max_mentions_per_comment", sa.Integer(), nullable=False, server_default="5"),
            _uuid("updated_by", nullable=True),
            sa.Column("updated_at", _TS, nullable=True),
            _org_fk(),
            sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("org_id"),
        )

    if "notification_log" not in existing_tables:
        op.create_table(
            "notification_log",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            _uuid("org_id", nullable=False),
            _uuid("user_id", nullable=False),
            sa.Column("notification_type", sa.String(length=30), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            _uuid("entity_id", nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("created_at", _TS, nullable=False),
            _org_fk(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notification_log_org_id", "notification_log", ["org_id"])
        op.create_index("ix_notification_log_user_id", "notification_log", ["user_id"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    # Children before parents
    for table in (
        "notification_log",
        "org_settings",
        "audit_logs",
        "executive_message_reads",
        "executive_messages",
        "announcement_reads",
        "announcements",
        "request_watchers",
        "request_comments",
        "approvals",
        "requests",
        "categories",
        "users",
        "organizations",
    ):
        if table in existing_tables:
            op.drop_table(table)
