"""Users and issued JWT records."""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20241018_0001"
down_revision = None
branch_labels = None
depends_on = None

_TOKEN_TYPE = sa.Enum("ACCESS", "REFRESH", name="tokentype")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "jwt_tokens",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("token_type", _TOKEN_TYPE, nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("token_hash", name="uq_jwt_tokens_token_hash"),
        sa.CheckConstraint("issued_at <= expires_at", name="ck_jwt_tokens_issued_before_expiry"),
    )
    op.create_index("ix_jwt_tokens_user_id", "jwt_tokens", ["user_id"])
    op.create_index("ix_jwt_tokens_expires_at", "jwt_tokens", ["expires_at"])
    op.create_index(
        "ix_jwt_tokens_active",
        "jwt_tokens",
        ["user_id", "token_type", "is_revoked", "expires_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_jwt_tokens_active", table_name="jwt_tokens")
    op.drop_index("ix_jwt_tokens_expires_at", table_name="jwt_tokens")
    op.drop_index("ix_jwt_tokens_user_id", table_name="jwt_tokens")
    op.drop_table("jwt_tokens")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
    _TOKEN_TYPE.drop(op.get_bind(), checkfirst=True)  # type: ignore[no-untyped-call]
