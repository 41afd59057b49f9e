from __future__ import annotations

import enum

from ..extensions import db


class TableState(str, enum.Enum):
    FREE = "FREE"
    OCCUPIED = "OCCUPIED"
    # Ticket or fiscal document emitted, payment not yet confirmed
    AWAITING_ORDER = "AWAITING_ORDER"
    BILL_REQUESTED = "BILL_REQUESTED"
    RESERVED = "RESERVED"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


# The only state that blocks shift closure.
BILLED_UNCOLLECTED = TableState.AWAITING_ORDER


class Sector(db.Model):
    """Dining-room area grouping tables (e.g. "Salon", "Terraza")."""
    __tablename__ = "sectors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class DiningTable(db.Model):
    """
    Restaurant table. Layout is managed elsewhere; the till only reads state.
    """
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.UniqueConstraint("sector_id", "number", name="uq_dining_tables_sector_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=False, index=True)
    state = db.Column(
        db.Enum(TableState, native_enum=False, length=24, validate_strings=True),
        nullable=False,
        default=TableState.FREE,
        index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    sector = db.relationship("Sector", backref=db.backref("tables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "sector": self.sector.name if self.sector else None,
            "state": TableState(self.state).value,
        }
