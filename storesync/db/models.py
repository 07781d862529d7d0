"""
SQLAlchemy models for the storesync mirror tables.

Defines the schema the sync jobs write into:
- products / variants (catalog sync, full replace)
- orders / line_items (order sync, upsert + line item replace)
- line_item_subscriptions (subscription sync, upsert by line item)
- last_order_update / recharge_order_id (watermarks)
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
AutoIncrementBigInteger = BigInteger().with_variant(Integer, "sqlite")


# =============================================================================
# CATALOG
# =============================================================================

class Product(Base):
    """Shopify product, keyed by the numeric part of its global id."""

    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    gid = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    inventory_available_qty = Column(Integer, default=0)
    tags = Column(Text)  # comma-joined
    img_src = Column(Text)
    description = Column(Text)
    maximum_price = Column(Numeric(12, 2))
    product_type = Column(Text)
    status = Column(Text)
    vendor = Column(Text)
    updated_at = Column(DateTime(timezone=True))

    variants = relationship("Variant", back_populates="product")

    __table_args__ = (
        Index("ix_products_status", "status"),
        Index("ix_products_vendor", "vendor"),
    )


class Variant(Base):
    """Shopify product variant."""

    __tablename__ = "variants"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    gid = Column(Text, nullable=False)
    product_id = Column(BigInteger, ForeignKey("products.id"), nullable=False)
    price = Column(Numeric(12, 2))
    sku = Column(Text)
    inventory_qty = Column(Integer, default=0)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        Index("ix_variants_product_id", "product_id"),
        Index("ix_variants_sku", "sku"),
    )


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """Shopify order mirrored from the REST orders endpoint."""

    __tablename__ = "orders"

    order_id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(Text)
    order_number = Column(Integer)
    confirmation_number = Column(Text)
    confirmed = Column(Boolean)
    reference = Column(Text)

    # Status
    cancel_reason = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))
    fulfillment_status = Column(Text)
    order_status_url = Column(Text)

    # Money
    currency = Column(Text)
    presentment_currency = Column(Text)
    current_subtotal_price = Column(Numeric(12, 2))
    current_subtotal_price_set = Column(JSON)
    current_total_additional_fees_set = Column(JSON)
    current_total_discounts = Column(Numeric(12, 2))
    current_total_discounts_set = Column(JSON)
    current_total_duties_set = Column(JSON)
    current_total_price = Column(Numeric(12, 2))
    current_total_price_set = Column(JSON)
    current_total_tax = Column(Numeric(12, 2))
    current_total_tax_set = Column(JSON)
    subtotal_price = Column(Numeric(12, 2))
    total_discounts = Column(Numeric(12, 2))
    total_line_items_price = Column(Numeric(12, 2))
    total_outstanding = Column(Numeric(12, 2))
    total_price = Column(Numeric(12, 2))
    total_price_set = Column(JSON)
    total_shipping_price_set = Column(JSON)
    total_tax = Column(Numeric(12, 2))
    total_tip_received = Column(Numeric(12, 2))
    total_weight = Column(Integer)

    # Metadata
    company = Column(Text)
    note = Column(Text)
    note_attributes = Column(JSON)
    tags = Column(Text)
    customer_id = Column(BigInteger)
    location_id = Column(BigInteger)
    source_name = Column(Text)
    source_identifier = Column(Text)
    source_url = Column(Text)
    gift_card_only = Column(Boolean, default=False)

    # Shipping address
    shipping_address1 = Column(Text)
    shipping_address2 = Column(Text)
    shipping_city = Column(Text)
    shipping_zip = Column(Text)
    shipping_province = Column(Text)
    shipping_country = Column(Text)
    shipping_company = Column(Text)
    shipping_latitude = Column(Float)
    shipping_longitude = Column(Float)
    shipping_country_code = Column(Text)
    shipping_province_code = Column(Text)

    # Timestamps
    created_at = Column(DateTime(timezone=True))
    processed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    line_items = relationship("LineItem", back_populates="order")

    __table_args__ = (
        Index("ix_orders_updated_at", "updated_at"),
        Index("ix_orders_customer_id", "customer_id"),
    )


class LineItem(Base):
    """Order line item; replaced wholesale whenever its order is re-synced."""

    __tablename__ = "line_items"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    order_id = Column(BigInteger, ForeignKey("orders.order_id"), nullable=False)
    admin_graphql_api_id = Column(Text)
    product_id = Column(BigInteger)
    variant_id = Column(BigInteger)
    sku = Column(Text)
    name = Column(Text)
    title = Column(Text)
    variant_title = Column(Text)
    vendor = Column(Text)
    grams = Column(Integer)

    price = Column(Numeric(12, 2))
    pre_tax_price = Column(Numeric(12, 2))
    total_discount = Column(Numeric(12, 2))

    quantity = Column(Integer)
    current_quantity = Column(Integer)
    fulfillable_quantity = Column(Integer)

    taxable = Column(Boolean)
    gift_card = Column(Boolean)
    product_exists = Column(Boolean)
    requires_shipping = Column(Boolean)
    fulfillment_status = Column(Text)
    fulfillment_service = Column(Text)
    variant_inventory_management = Column(Text)

    # JSON-serialized sub-structures
    price_set = Column(Text)
    pre_tax_price_set = Column(Text)
    total_discount_set = Column(Text)
    tax_lines = Column(Text)
    discount_allocations = Column(Text)
    properties = Column(Text)
    attributed_staffs = Column(Text)

    order = relationship("Order", back_populates="line_items")

    __table_args__ = (
        Index("ix_line_items_order_id", "order_id"),
        Index("ix_line_items_match", "order_id", "variant_id"),
    )


class LineItemSubscription(Base):
    """Subscription contract details for a line item, one row per line item."""

    __tablename__ = "line_item_subscriptions"

    # Not a foreign key: line items are deleted and recreated with the same
    # ids on every order re-sync and this row has to survive that.
    line_item_id = Column(BigInteger, primary_key=True, autoincrement=False)
    is_subscription = Column(Boolean, default=True)
    selling_plan_id = Column(Text)
    selling_plan_name = Column(Text)
    subscription_contract_id = Column(Text)
    contract_status = Column(Text)
    next_billing_date = Column(DateTime(timezone=True))
    billing_interval = Column(Text)
    billing_interval_count = Column(Integer)
    delivery_interval = Column(Text)
    delivery_interval_count = Column(Integer)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))


# =============================================================================
# WATERMARKS
# =============================================================================

class LastOrderUpdate(Base):
    """Single-row table: newest order updated_at processed by the order sync."""

    __tablename__ = "last_order_update"

    id = Column(Integer, primary_key=True, autoincrement=False)
    last_update = Column(DateTime(timezone=True), nullable=False)


class RechargeOrderWatermark(Base):
    """Append-only history of the highest ReCharge order id seen per run."""

    __tablename__ = "recharge_order_id"

    id = Column(AutoIncrementBigInteger, primary_key=True, autoincrement=True)
    last_order_id = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
