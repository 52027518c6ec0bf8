"""001: create connections table

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE connections (
            id                  TEXT        PRIMARY KEY,
            user_id             TEXT        NOT NULL,
            institution_id      TEXT        NOT NULL,
            institution_name    TEXT        NOT NULL,
            status              TEXT        NOT NULL DEFAULT 'active',
            last_sync           TIMESTAMPTZ,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_connections_status
                CHECK (status IN ('active', 'error', 'disconnected'))
        );
    """)
    op.execute("CREATE INDEX idx_connections_user_status ON connections (user_id, status);")
    op.execute("""
        CREATE TRIGGER trg_connections_updated_at
            BEFORE UPDATE ON connections
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("COMMENT ON TABLE connections IS 'Aggregation-provider links, one per user and institution';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS connections CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_touch_updated_at();")
