"""002: create accounts table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE accounts (
            id                  TEXT          PRIMARY KEY,
            user_id             TEXT          NOT NULL,
            connection_id       TEXT          NOT NULL REFERENCES connections (id) ON DELETE CASCADE,
            name                TEXT          NOT NULL,
            official_name       TEXT,
            type                TEXT          NOT NULL,
            subtype             TEXT          NOT NULL DEFAULT '',
            balance_available   NUMERIC(18,2),
            balance_current     NUMERIC(18,2) NOT NULL DEFAULT 0,
            balance_limit       NUMERIC(18,2),
            last_updated        TIMESTAMPTZ,
            created_at          TIMESTAMPTZ   NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ   NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_accounts_user_created ON accounts (user_id, created_at);")
    op.execute("""
        CREATE TRIGGER trg_accounts_updated_at
            BEFORE UPDATE ON accounts
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS accounts CASCADE;")
