from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from vendor_portal.db import get_db_connection


@dataclass(frozen=True)
class WorkOrderRecord:
    id: str
    org_id: str
    title: str | None = None
    work_order_number: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> WorkOrderRecord:
        number = row.get("work_order_number")
        return cls(
            id=str(row["id"]),
            org_id=str(row["org_id"]),
            title=row.get("title"),
            work_order_number=int(number) if number is not None else None,
        )

    @property
    def display_number(self) -> str | None:
        if self.work_order_number is None:
            return None
        return f"WO-{self.work_order_number:04d}"


class WorkOrderDirectory(Protocol):
    """Read access to the platform's work orders, scoped by organization."""

    def get(self, *, org_id: str, work_order_id: str) -> WorkOrderRecord | None:
        ...


class PostgresWorkOrderDirectory:
    def get(self, *, org_id: str, work_order_id: str) -> WorkOrderRecord | None:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, org_id, title, work_order_number
                    FROM work_orders
                    WHERE id = %s
                      AND org_id = %s
                    """,
                    (work_order_id, org_id),
                )
                row = cur.fetchone()
        return WorkOrderRecord.from_row(row) if row else None
