from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..decimal_utils import money_str, quantity_str


class Product(db.Model):
    """
    A manufactured product and the cached figures derived from its recipe.

    estimated_cost and recommended_price are stored values. They only change
    when a caller invokes recalculate_product_cost (or sets them by hand);
    saving a recipe does not touch them. Productions snapshot whatever is
    stored at creation time.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_org_name", "org_id", "name"),
        db.Index("ix_products_org_archived", "org_id", "is_archived"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100), nullable=True)
    description = db.Column(db.String(500), nullable=True)

    production_time_minutes = db.Column(db.Integer, nullable=False, default=0)

    # Kilograms, recalculated from kg/g recipe lines
    weight = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    estimated_cost = db.Column(db.Numeric(18, 2), nullable=True)
    markup_percent = db.Column(db.Numeric(7, 2), nullable=False, default=Decimal("100"))
    recommended_price = db.Column(db.Numeric(18, 2), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "production_time_minutes": self.production_time_minutes,
            "weight": quantity_str(self.weight),
            "estimated_cost": money_str(self.estimated_cost),
            "markup_percent": money_str(self.markup_percent),
            "recommended_price": money_str(self.recommended_price),
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RecipeItem(db.Model):
    """Quantity of one material needed to produce a single unit of a product."""
    __tablename__ = "recipe_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "material_id", name="uq_recipe_items_product_material"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "material_id": self.material_id,
            "quantity": quantity_str(self.quantity),
        }
