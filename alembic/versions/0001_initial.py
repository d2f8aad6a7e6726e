"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("external_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("brand", sa.String(length=255), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="other"),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("main_image_url", sa.String(length=2048), nullable=True),
        sa.Column("product_url", sa.String(length=2048), nullable=True),
        sa.Column("colors", sa.JSON(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_products_brand", "products", ["brand"])
    op.create_index("ix_products_source", "products", ["source"])

    op.create_table(
        "style_generations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("form_input", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("ai_response", sa.JSON(), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("outfit_id", sa.String(length=36), nullable=True),
        sa.Column("scraped_product_ids", sa.JSON(), nullable=False),
        sa.Column("cost_summary", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_style_generations_user_id", "style_generations", ["user_id"])
    op.create_index("ix_style_generations_status", "style_generations", ["status"])

    op.create_table(
        "outfits",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "generation_id",
            sa.String(length=36),
            sa.ForeignKey("style_generations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("banner_image_url", sa.String(length=2048), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_outfits_user_id", "outfits", ["user_id"])
    op.create_index("ix_outfits_generation_id", "outfits", ["generation_id"])
    op.create_index("ix_outfits_is_public", "outfits", ["is_public"])

    op.create_table(
        "outfit_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("outfit_id", sa.String(length=36), sa.ForeignKey("outfits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("plan_key", sa.String(length=255), nullable=True),
        sa.Column("search_query", sa.String(length=1024), nullable=True),
        sa.Column("min_price", sa.Float(), nullable=True),
        sa.Column("max_price", sa.Float(), nullable=True),
    )
    op.create_index("ix_outfit_items_outfit_id", "outfit_items", ["outfit_id"])

    op.create_table(
        "ai_usage",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("outfit_generations_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "period_start", name="uq_ai_usage_user_period"),
    )
    op.create_index("ix_ai_usage_user_id", "ai_usage", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_ai_usage_user_id", table_name="ai_usage")
    op.drop_table("ai_usage")
    op.drop_index("ix_outfit_items_outfit_id", table_name="outfit_items")
    op.drop_table("outfit_items")
    op.drop_index("ix_outfits_is_public", table_name="outfits")
    op.drop_index("ix_outfits_generation_id", table_name="outfits")
    op.drop_index("ix_outfits_user_id", table_name="outfits")
    op.drop_table("outfits")
    op.drop_index("ix_style_generations_status", table_name="style_generations")
    op.drop_index("ix_style_generations_user_id", table_name="style_generations")
    op.drop_table("style_generations")
    op.drop_index("ix_products_source", table_name="products")
    op.drop_index("ix_products_brand", table_name="products")
    op.drop_table("products")
