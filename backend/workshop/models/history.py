# backend/workshop/models/history.py

import json

from ..extensions import db
from ..time_utils import to_utc_z
from ..decimal_utils import money_str, quantity_str

OP_MATERIAL_CREATE = "MaterialCreate"
OP_MATERIAL_UPDATE = "MaterialUpdate"
OP_MATERIAL_DELETE = "MaterialDelete"
OP_RECEIPT_CREATE = "MaterialReceiptCreate"
OP_RECEIPT_UPDATE = "MaterialReceiptUpdate"
OP_RECEIPT_DELETE = "MaterialReceiptDelete"
OP_PRODUCT_CREATE = "ProductCreate"
OP_PRODUCT_UPDATE = "ProductUpdate"
OP_PRODUCT_DELETE = "ProductDelete"
OP_PRODUCTION_CREATE = "ProductionCreate"
OP_PRODUCTION_CANCEL = "ProductionCancel"
OP_PRODUCTION_DELETE = "ProductionDelete"
OP_SALE = "Sale"
OP_WRITE_OFF = "WriteOff"
OP_RETURN_TO_STOCK = "ReturnToStock"
OP_FINISHED_PRODUCT_UPDATE = "FinishedProductUpdate"

# Operations whose effect can still be reversed by a follow-up workflow
CANCELLABLE_OPERATIONS = frozenset({
    OP_RECEIPT_CREATE,
    OP_PRODUCTION_CREATE,
    OP_SALE,
    OP_WRITE_OFF,
})


class OperationHistory(db.Model):
    """
    Append-only audit row for every mutating workflow.

    Rows are written in the same DB transaction as the mutation they
    describe. The only permitted update is flipping is_cancelled when the
    recorded operation is later reversed.
    """
    __tablename__ = "operation_history"
    __table_args__ = (
        db.Index("ix_history_org_created", "org_id", "created_at"),
        db.Index("ix_history_org_entity", "org_id", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    operation_type = db.Column(db.String(50), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    entity_name = db.Column(db.String(200), nullable=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=True)
    amount = db.Column(db.Numeric(18, 2), nullable=True)

    description = db.Column(db.String(1000), nullable=True)
    details = db.Column(db.Text, nullable=True)  # JSON

    related_operation_id = db.Column(db.Integer, db.ForeignKey("operation_history.id"), nullable=True)

    is_cancelled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "operation_type": self.operation_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "quantity": quantity_str(self.quantity),
            "amount": money_str(self.amount),
            "description": self.description,
            "details": json.loads(self.details) if self.details else None,
            "related_operation_id": self.related_operation_id,
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "can_cancel": (not self.is_cancelled) and self.operation_type in CANCELLABLE_OPERATIONS,
            "can_restore": self.is_cancelled,
        }
