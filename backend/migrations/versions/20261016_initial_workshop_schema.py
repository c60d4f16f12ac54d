"""Initial workshop schema: tenancy, materials, products, production, history

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organizations", schema=None) as batch_op:
        batch_op.create_index("ix_organizations_is_active", ["is_active"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_email", ["email"], unique=True)

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organization_members", schema=None) as batch_op:
        batch_op.create_index("ix_organization_members_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_organization_members_user_id", ["user_id"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    op.create_table(
        "materials",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("unit", sa.String(50), nullable=False),
        sa.Column("color", sa.String(100), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("minimum_stock", sa.Numeric(18, 4), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("materials", schema=None) as batch_op:
        batch_op.create_index("ix_materials_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_materials_org_name", ["org_id", "name"], unique=False)
        batch_op.create_index("ix_materials_org_archived", ["org_id", "is_archived"], unique=False)

    op.create_table(
        "material_receipts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("receipt_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("batch_number", sa.String(100), nullable=True),
        sa.Column("purchase_source", sa.String(200), nullable=True),
        sa.Column("comment", sa.String(500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("material_receipts", schema=None) as batch_op:
        batch_op.create_index("ix_material_receipts_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_material_receipts_material_id", ["material_id"], unique=False)
        batch_op.create_index("ix_material_receipts_receipt_date", ["receipt_date"], unique=False)
        batch_op.create_index(
            "ix_receipts_org_material_date", ["org_id", "material_id", "receipt_date", "id"], unique=False
        )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("production_time_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("weight", sa.Numeric(18, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_cost", sa.Numeric(18, 2), nullable=True),
        sa.Column("markup_percent", sa.Numeric(7, 2), nullable=False, server_default=sa.text("100")),
        sa.Column("recommended_price", sa.Numeric(18, 2), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_products_org_name", ["org_id", "name"], unique=False)
        batch_op.create_index("ix_products_org_archived", ["org_id", "is_archived"], unique=False)

    op.create_table(
        "recipe_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "material_id", name="uq_recipe_items_product_material"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("recipe_items", schema=None) as batch_op:
        batch_op.create_index("ix_recipe_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_recipe_items_material_id", ["material_id"], unique=False)

    op.create_table(
        "productions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("production_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("batch_number", sa.String(50), nullable=False),
        sa.Column("qr_code", sa.String(500), nullable=True),
        sa.Column("cost_per_unit", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_cost", sa.Numeric(18, 2), nullable=False),
        sa.Column("recommended_price_per_unit", sa.Numeric(18, 2), nullable=True),
        sa.Column("comment", sa.String(500), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "batch_number", name="uq_productions_org_batch"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("productions", schema=None) as batch_op:
        batch_op.create_index("ix_productions_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_productions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_productions_is_cancelled", ["is_cancelled"], unique=False)
        batch_op.create_index("ix_productions_org_date", ["org_id", "production_date"], unique=False)

    op.create_table(
        "material_write_offs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("production_id", sa.Integer(), nullable=False),
        sa.Column("material_receipt_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["production_id"], ["productions.id"]),
        sa.ForeignKeyConstraint(["material_receipt_id"], ["material_receipts.id"]),
        sa.ForeignKeyConstraint(["material_id"], ["materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("material_write_offs", schema=None) as batch_op:
        batch_op.create_index("ix_write_offs_receipt", ["material_receipt_id"], unique=False)
        batch_op.create_index("ix_write_offs_production", ["production_id"], unique=False)
        batch_op.create_index("ix_material_write_offs_material_id", ["material_id"], unique=False)

    op.create_table(
        "finished_products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("production_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("cost_per_unit", sa.Numeric(18, 2), nullable=False),
        sa.Column("recommended_price", sa.Numeric(18, 2), nullable=True),
        sa.Column("sale_price", sa.Numeric(18, 2), nullable=True),
        sa.Column("client", sa.String(200), nullable=True),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("write_off_reason", sa.String(500), nullable=True),
        sa.Column("comment", sa.String(500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["production_id"], ["productions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("finished_products", schema=None) as batch_op:
        batch_op.create_index("ix_finished_products_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_finished_products_production_id", ["production_id"], unique=False)
        batch_op.create_index("ix_finished_products_org_status", ["org_id", "status"], unique=False)

    op.create_table(
        "batch_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("sequence_date", sa.String(8), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "sequence_date", name="uq_batch_sequences_org_date"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("batch_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_batch_sequences_org_id", ["org_id"], unique=False)

    op.create_table(
        "operation_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("operation_type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("entity_name", sa.String(200), nullable=True),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("related_operation_id", sa.Integer(), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["related_operation_id"], ["operation_history.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("operation_history", schema=None) as batch_op:
        batch_op.create_index("ix_operation_history_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_operation_history_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_operation_history_operation_type", ["operation_type"], unique=False)
        batch_op.create_index("ix_operation_history_is_cancelled", ["is_cancelled"], unique=False)
        batch_op.create_index("ix_operation_history_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_history_org_created", ["org_id", "created_at"], unique=False)
        batch_op.create_index("ix_history_org_entity", ["org_id", "entity_type", "entity_id"], unique=False)


def downgrade():
    op.drop_table("operation_history")
    op.drop_table("batch_sequences")
    op.drop_table("finished_products")
    op.drop_table("material_write_offs")
    op.drop_table("productions")
    op.drop_table("recipe_items")
    op.drop_table("products")
    op.drop_table("material_receipts")
    op.drop_table("materials")
    op.drop_table("session_tokens")
    op.drop_table("organization_members")
    op.drop_table("users")
    op.drop_table("organizations")
