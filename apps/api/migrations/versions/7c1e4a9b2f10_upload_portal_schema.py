"""upload_portal_schema

Revision ID: 7c1e4a9b2f10
Revises: 
Create Date: 2026-10-12 09:41:27.118204

"""
from pathlib import Path
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '7c1e4a9b2f10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    schema_path = (
        Path(__file__).resolve().parents[1]
        / "sql"
        / "7c1e4a9b2f10_upload_portal_schema.sql"
    )
    schema_sql = schema_path.read_text(encoding="utf-8")
    bind = op.get_bind()
    raw_connection = bind.connection
    with raw_connection.cursor() as cursor:
        cursor.execute(schema_sql)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    raw_connection = bind.connection
    with raw_connection.cursor() as cursor:
        cursor.execute(
            """
            DROP TABLE IF EXISTS audit_events CASCADE;
            DROP TABLE IF EXISTS upload_files CASCADE;
            DROP TABLE IF EXISTS upload_requests CASCADE;
            DROP TABLE IF EXISTS vendor_documents CASCADE;
            DROP TABLE IF EXISTS work_order_documents CASCADE;
            DROP TABLE IF EXISTS documents CASCADE;
            DROP TABLE IF EXISTS work_orders CASCADE;

            DROP TYPE IF EXISTS upload_file_status;
            DROP TYPE IF EXISTS upload_request_status;
            """
        )
