from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..decimal_utils import money_str

FINISHED_STATUS_IN_STOCK = "InStock"
FINISHED_STATUS_SOLD = "Sold"
FINISHED_STATUS_WRITTEN_OFF = "WrittenOff"

FINISHED_STATUSES = (
    FINISHED_STATUS_IN_STOCK,
    FINISHED_STATUS_SOLD,
    FINISHED_STATUS_WRITTEN_OFF,
)


class Production(db.Model):
    """
    A production run of one product.

    cost_per_unit, total_cost and recommended_price_per_unit are snapshots of
    the product's cached cost fields at creation and are never recomputed.
    A cancelled production keeps its row (is_cancelled=True) for audit
    continuity; a deleted one is gone.
    """
    __tablename__ = "productions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "batch_number", name="uq_productions_org_batch"),
        db.Index("ix_productions_org_date", "org_id", "production_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    production_date = db.Column(db.DateTime(timezone=True), nullable=False)

    batch_number = db.Column(db.String(50), nullable=False)
    qr_code = db.Column(db.String(500), nullable=True)

    cost_per_unit = db.Column(db.Numeric(18, 2), nullable=False)
    total_cost = db.Column(db.Numeric(18, 2), nullable=False)
    recommended_price_per_unit = db.Column(db.Numeric(18, 2), nullable=True)

    comment = db.Column(db.String(500), nullable=True)
    # Stored path or URL of a photo of the batch; files are not handled here
    photo_path = db.Column(db.String(500), nullable=True)

    is_cancelled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Production id={self.id} batch={self.batch_number!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "production_date": to_utc_z(self.production_date),
            "batch_number": self.batch_number,
            "qr_code": self.qr_code,
            "cost_per_unit": money_str(self.cost_per_unit),
            "total_cost": money_str(self.total_cost),
            "recommended_price_per_unit": money_str(self.recommended_price_per_unit),
            "comment": self.comment,
            "photo_path": self.photo_path,
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class FinishedProduct(db.Model):
    """
    One physical unit produced by a Production.

    Status cycles InStock -> Sold / WrittenOff -> InStock. Cost fields are
    copied from the production snapshot.
    """
    __tablename__ = "finished_products"
    __table_args__ = (
        db.Index("ix_finished_products_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    production_id = db.Column(db.Integer, db.ForeignKey("productions.id"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default=FINISHED_STATUS_IN_STOCK)

    cost_per_unit = db.Column(db.Numeric(18, 2), nullable=False)
    recommended_price = db.Column(db.Numeric(18, 2), nullable=True)

    sale_price = db.Column(db.Numeric(18, 2), nullable=True)
    client = db.Column(db.String(200), nullable=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=True)
    write_off_reason = db.Column(db.String(500), nullable=True)
    comment = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        profit = None
        if self.status == FINISHED_STATUS_SOLD and self.sale_price is not None:
            profit = self.sale_price - self.cost_per_unit
        return {
            "id": self.id,
            "org_id": self.org_id,
            "production_id": self.production_id,
            "status": self.status,
            "cost_per_unit": money_str(self.cost_per_unit),
            "recommended_price": money_str(self.recommended_price),
            "sale_price": money_str(self.sale_price),
            "profit": money_str(profit),
            "client": self.client,
            "sale_date": to_utc_z(self.sale_date),
            "write_off_reason": self.write_off_reason,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BatchSequence(db.Model):
    """
    Atomic per-organization, per-day batch counters.

    WHY: counting today's productions races under concurrency; an UPDATE on
    this row serializes batch number allocation.
    """
    __tablename__ = "batch_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sequence_date", name="uq_batch_sequences_org_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sequence_date = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sequence_date": self.sequence_date,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
