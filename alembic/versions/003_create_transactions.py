"""003: create transactions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE transactions (
            id                  TEXT          PRIMARY KEY,
            user_id             TEXT          NOT NULL,
            account_id          TEXT          NOT NULL REFERENCES accounts (id) ON DELETE CASCADE,
            amount              NUMERIC(18,2) NOT NULL,
            date                DATE          NOT NULL,
            name                TEXT          NOT NULL,
            merchant_name       TEXT,
            category            TEXT[]        NOT NULL DEFAULT '{}',
            subcategory         TEXT,
            pending             BOOLEAN       NOT NULL DEFAULT FALSE,
            created_at          TIMESTAMPTZ   NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ   NOT NULL DEFAULT NOW()
        );
    """)
    # Default listing order: newest first, id as tie-breaker
    op.execute(
        "CREATE INDEX idx_transactions_user_date ON transactions (user_id, date DESC, id DESC);"
    )
    op.execute("CREATE INDEX idx_transactions_account ON transactions (account_id);")
    op.execute("CREATE INDEX idx_transactions_category ON transactions USING GIN (category);")
    op.execute("""
        CREATE TRIGGER trg_transactions_updated_at
            BEFORE UPDATE ON transactions
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions CASCADE;")
