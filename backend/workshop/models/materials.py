from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..decimal_utils import money_str, quantity_str


class Material(db.Model):
    """
    Raw material master data.

    MULTI-TENANT: Materials are scoped to organizations via org_id.
    Identity is (org_id, name, color): names compare case-insensitively and
    a missing color equals the empty color. The service layer enforces it
    because NULL colors would slip past a plain unique constraint.

    Stock is never stored here. It is derived from MaterialReceipt and
    MaterialWriteOff rows by the stock ledger.
    """
    __tablename__ = "materials"
    __table_args__ = (
        db.Index("ix_materials_org_name", "org_id", "name"),
        db.Index("ix_materials_org_archived", "org_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(50), nullable=False)  # pcs, kg, g, m, l ...
    color = db.Column(db.String(100), nullable=True)
    category = db.Column(db.String(100), nullable=True)
    description = db.Column(db.String(500), nullable=True)

    # Reminder threshold for the balance report
    minimum_stock = db.Column(db.Numeric(18, 4), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Material id={self.id} name={self.name!r} color={self.color!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "unit": self.unit,
            "color": self.color,
            "category": self.category,
            "description": self.description,
            "minimum_stock": quantity_str(self.minimum_stock),
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MaterialReceipt(db.Model):
    """
    One lot of a material bought at a point in time and price.

    FIFO order is (receipt_date, id). Once a write-off references the lot,
    its material, unit price and date are frozen and its quantity may not
    drop below the allocated amount.
    """
    __tablename__ = "material_receipts"
    __table_args__ = (
        db.Index("ix_receipts_org_material_date", "org_id", "material_id", "receipt_date", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=False)
    receipt_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    unit_price = db.Column(db.Numeric(18, 2), nullable=False)
    total_price = db.Column(db.Numeric(18, 2), nullable=False)

    batch_number = db.Column(db.String(100), nullable=True)
    purchase_source = db.Column(db.String(200), nullable=True)
    comment = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<MaterialReceipt id={self.id} material_id={self.material_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "material_id": self.material_id,
            "quantity": quantity_str(self.quantity),
            "receipt_date": to_utc_z(self.receipt_date),
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "batch_number": self.batch_number,
            "purchase_source": self.purchase_source,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MaterialWriteOff(db.Model):
    """
    Consumption of a quantity from one specific receipt by one production.

    unit_price is copied from the receipt when the allocator runs, so the
    production cost is immune to later receipt price edits. Rows are only
    created by the FIFO allocator and only removed by production
    cancellation or deletion.
    """
    __tablename__ = "material_write_offs"
    __table_args__ = (
        db.Index("ix_write_offs_receipt", "material_receipt_id"),
        db.Index("ix_write_offs_production", "production_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    production_id = db.Column(db.Integer, db.ForeignKey("productions.id"), nullable=False)
    material_receipt_id = db.Column(db.Integer, db.ForeignKey("material_receipts.id"), nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=False)
    unit_price = db.Column(db.Numeric(18, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "production_id": self.production_id,
            "material_receipt_id": self.material_receipt_id,
            "material_id": self.material_id,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "created_at": to_utc_z(self.created_at),
        }
