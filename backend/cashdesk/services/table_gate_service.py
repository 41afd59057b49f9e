# Overview: Read-only check for tables billed but not yet collected.

from __future__ import annotations

from ..extensions import db
from ..models import DiningTable, Sector
from ..models.tables import BILLED_UNCOLLECTED


def find_tables_pending_collection() -> list[DiningTable]:
    """
    Active tables whose ticket/fiscal document was emitted but payment is
    not yet confirmed. Any result blocks shift closure.
    """
    return (
        db.session.query(DiningTable)
        .join(Sector, Sector.id == DiningTable.sector_id)
        .filter(
            DiningTable.state == BILLED_UNCOLLECTED,
            DiningTable.is_active.is_(True),
        )
        .order_by(Sector.name, DiningTable.number)
        .all()
    )


def describe_tables(tables: list[DiningTable]) -> list[dict]:
    return [table.to_dict() for table in tables]


def summary_line(tables: list[DiningTable]) -> str:
    """Human-readable list, e.g. 'Table 4 (Salon), Table 7 (Terrace)'."""
    return ", ".join(f"Table {t.number} ({t.sector.name})" for t in tables)
