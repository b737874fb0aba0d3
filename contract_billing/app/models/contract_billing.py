"""Models for contract billing lines and generation batches."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id
from .case_billing import CASE_TYPE_ENUM
from .customer import BILLING_FREQUENCY_ENUM


class BillingItemStatus(str, enum.Enum):
    """Lifecycle status of a billing line."""

    PENDING = "pending"
    APPROVED = "approved"
    INVOICED = "invoiced"
    PAID = "paid"
    CANCELLED = "cancelled"


class BillingItemType(str, enum.Enum):
    """Scheduled contract charge or charge triggered by case work."""

    CONTRACT = "contract"
    AD_HOC = "ad_hoc"


class BillingItemSource(str, enum.Enum):
    """Where the billing line came from."""

    PRICE_LIST = "price_list"
    CASE_COMPLETION = "case_completion"
    MANUAL = "manual"


class BatchStatus(str, enum.Enum):
    """Lifecycle status of a generation batch."""

    DRAFT = "draft"
    GENERATED = "generated"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _str_enum(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
    )


BILLING_ITEM_STATUS_ENUM = _str_enum(BillingItemStatus, "billing_item_status_enum")
BILLING_ITEM_TYPE_ENUM = _str_enum(BillingItemType, "billing_item_type_enum")
BILLING_ITEM_SOURCE_ENUM = _str_enum(BillingItemSource, "billing_item_source_enum")
BATCH_STATUS_ENUM = _str_enum(BatchStatus, "billing_batch_status_enum")


class ContractBillingBatch(Base):
    """One bulk-generation run across many customers for a billing period."""

    __tablename__ = "contract_billing_batches"
    __table_args__ = (
        CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_contract_billing_batches_valid_range",
        ),
    )

    id = Column("batch_id", GUID(), primary_key=True, default=new_id)
    batch_number = Column(String, unique=True, nullable=False)
    billing_period_start = Column(Date, nullable=False)
    billing_period_end = Column(Date, nullable=False)
    billing_frequency = Column(BILLING_FREQUENCY_ENUM, nullable=True)
    status = Column(BATCH_STATUS_ENUM, nullable=False, default=BatchStatus.DRAFT)
    total_customers = Column(Integer, nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    failed_customers = Column(Integer, nullable=False, default=0)
    generated_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "ContractBillingItem",
        back_populates="batch",
        cascade="all, delete-orphan",
    )


class ContractBillingItem(Base):
    """Atomic billable fact for one customer and one calendar period."""

    __tablename__ = "contract_billing_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_contract_billing_items_quantity_positive"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_contract_billing_items_discount_range",
        ),
        CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_contract_billing_items_valid_range",
        ),
        Index(
            "contract_billing_items_customer_period_idx",
            "customer_id",
            "billing_period_start",
        ),
        Index("contract_billing_items_status_idx", "status"),
    )

    id = Column("billing_item_id", GUID(), primary_key=True, default=new_id)
    customer_id = Column(
        GUID(),
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    billing_period_start = Column(Date, nullable=False)
    billing_period_end = Column(Date, nullable=False)
    article_id = Column(
        GUID(),
        ForeignKey("articles.article_id", ondelete="SET NULL"),
        nullable=True,
    )
    article_code = Column(String, nullable=True)
    article_name = Column(String, nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=25)
    status = Column(
        BILLING_ITEM_STATUS_ENUM, nullable=False, default=BillingItemStatus.PENDING
    )
    item_type = Column(
        BILLING_ITEM_TYPE_ENUM, nullable=False, default=BillingItemType.CONTRACT
    )
    source = Column(
        BILLING_ITEM_SOURCE_ENUM, nullable=False, default=BillingItemSource.PRICE_LIST
    )
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    original_price = Column(Numeric(12, 2), nullable=True)
    requires_approval = Column(Boolean, nullable=False, default=False)
    batch_id = Column(
        GUID(),
        ForeignKey("contract_billing_batches.batch_id", ondelete="CASCADE"),
        nullable=True,
    )
    case_id = Column(String, nullable=True)
    case_type = Column(CASE_TYPE_ENUM, nullable=True)
    dedup_key = Column(
        String,
        unique=True,
        nullable=True,
        comment="Idempotency key; NULL for manual lines",
    )
    generated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)
    invoice_number = Column(String, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    customer = relationship("Customer", back_populates="billing_items")
    article = relationship("Article")
    batch = relationship("ContractBillingBatch", back_populates="items")
