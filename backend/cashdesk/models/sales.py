from __future__ import annotations

from ..extensions import db
from cashdesk.time_utils import to_utc_z


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "price": str(self.price),
            "is_active": self.is_active,
        }


class Sale(db.Model):
    """
    Sale ticket, optionally tied to a dining table.

    LIFECYCLE:
    - PENDING: items being added, nothing billed
    - COMPLETED: ticket/fiscal document emitted and payments recorded in the till
    """
    __tablename__ = "sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False, unique=True)
    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    document_type = db.Column(db.String(32), nullable=True)
    document_number = db.Column(db.String(32), nullable=True, index=True)
    authorization_code = db.Column(db.String(32), nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    table = db.relationship("DiningTable", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "table_id": self.table_id,
            "user_id": self.user_id,
            "status": self.status,
            "total": str(self.total),
            "document_type": self.document_type,
            "document_number": self.document_number,
            "authorization_code": self.authorization_code,
            "sold_at": to_utc_z(self.sold_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "subtotal": str(self.subtotal),
        }
