"""SQLAlchemy database models.

Maps domain models to PostgreSQL tables.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from blockmarket.models.block import BlockStatus, StripeAccountStatus
from blockmarket.models.license import DeliveryStatus, LicenseStatus
from blockmarket.models.purchase import LicenseType, PurchaseStatus
from blockmarket.models.webhook_event import WebhookEventStatus


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class CreatorTable(Base):
    """Creator payout account (owned by the catalog)."""

    __tablename__ = "creators"

    id = Column(Uuid, primary_key=True, default=uuid4)
    display_name = Column(String(100), nullable=False)
    stripe_account_id = Column(String(255), nullable=True, unique=True)
    stripe_account_status = Column(
        Enum(StripeAccountStatus, native_enum=True),
        nullable=False,
        default=StripeAccountStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    blocks = relationship("BlockTable", back_populates="creator")


class BlockTable(Base):
    """Block listing (owned by the catalog); price and fee fields are read here."""

    __tablename__ = "blocks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    creator_id = Column(Uuid, ForeignKey("creators.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    platform_fee_bps = Column(Integer, nullable=False, default=1500)
    status = Column(
        Enum(BlockStatus, native_enum=True),
        nullable=False,
        default=BlockStatus.DRAFT,
        index=True,
    )
    sold_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("CreatorTable", back_populates="blocks", lazy="joined")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_nonnegative_price"),
        CheckConstraint("sold_count >= 0", name="check_nonnegative_sold_count"),
    )


class PurchaseTable(Base):
    """Purchase aggregate table."""

    __tablename__ = "purchases"

    id = Column(Uuid, primary_key=True, default=uuid4)
    buyer_id = Column(String(64), nullable=False, index=True)
    status = Column(
        Enum(PurchaseStatus, native_enum=True),
        nullable=False,
        default=PurchaseStatus.PENDING,
        index=True,
    )
    currency = Column(String(3), nullable=False, default="USD")
    subtotal_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee_amount = Column(Numeric(10, 2), nullable=False)
    stripe_fee_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    external_payment_reference = Column(String(255), nullable=True, unique=True)
    stripe_charge_id = Column(String(255), nullable=True)
    checkout_session_id = Column(String(255), nullable=True, unique=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    line_items = relationship(
        "LineItemTable",
        back_populates="purchase",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LineItemTable.position",
    )
    licenses = relationship("LicenseTable", back_populates="purchase")

    __table_args__ = (
        CheckConstraint(
            "round(total_amount * 100) = round(subtotal_amount * 100) + round(platform_fee_amount * 100)",
            name="check_total_matches_components",
        ),
        CheckConstraint("subtotal_amount >= 0", name="check_nonnegative_subtotal"),
        CheckConstraint("platform_fee_amount >= 0", name="check_nonnegative_platform_fee"),
        Index("ix_purchases_buyer_created", buyer_id, created_at.desc()),
    )


class LineItemTable(Base):
    """Purchased block snapshot; never updated after insert."""

    __tablename__ = "purchase_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    purchase_id = Column(Uuid, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    block_id = Column(Uuid, ForeignKey("blocks.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    unit_price = Column(Numeric(10, 2), nullable=False)
    license_type = Column(Enum(LicenseType, native_enum=True), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # Relationships
    purchase = relationship("PurchaseTable", back_populates="line_items")
    block = relationship("BlockTable", lazy="joined")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_positive_quantity"),
        CheckConstraint("unit_price >= 0", name="check_nonnegative_unit_price"),
        UniqueConstraint("purchase_id", "block_id", name="uq_line_item_purchase_block"),
    )


class LicenseTable(Base):
    """License minted on fulfillment."""

    __tablename__ = "licenses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    purchase_id = Column(Uuid, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    block_id = Column(Uuid, ForeignKey("blocks.id"), nullable=False, index=True)
    type = Column(Enum(LicenseType, native_enum=True), nullable=False)
    status = Column(
        Enum(LicenseStatus, native_enum=True),
        nullable=False,
        default=LicenseStatus.ACTIVE,
    )
    delivery_status = Column(
        Enum(DeliveryStatus, native_enum=True),
        nullable=False,
        default=DeliveryStatus.NOT_READY,
    )
    delivery_ready_at = Column(DateTime, nullable=True)
    transaction_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    purchase = relationship("PurchaseTable", back_populates="licenses")
    block = relationship("BlockTable")

    __table_args__ = (
        UniqueConstraint("purchase_id", "block_id", name="uq_license_purchase_block"),
        Index("ix_licenses_buyer_created", buyer_id, created_at.desc()),
    )


class PayoutTable(Base):
    """Transfer to a creator's connected account."""

    __tablename__ = "payouts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    creator_id = Column(Uuid, ForeignKey("creators.id"), nullable=False, index=True)
    purchase_id = Column(Uuid, ForeignKey("purchases.id"), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    external_transfer_reference = Column(String(255), nullable=False, unique=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_nonnegative_payout_amount"),
        Index("ix_payouts_creator_paid", creator_id, paid_at.desc()),
    )


class WebhookEventTable(Base):
    """Received gateway events, one row per gateway event id."""

    __tablename__ = "webhook_events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    provider = Column(String(20), nullable=False, default="STRIPE")
    external_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False, index=True)
    status = Column(
        Enum(WebhookEventStatus, native_enum=True),
        nullable=False,
        default=WebhookEventStatus.RECEIVED,
        index=True,
    )
    payload = Column(JSON, nullable=False, default=dict)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)
