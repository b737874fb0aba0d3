"""Billing lines registered by technicians on individual service cases."""

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
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id


class CaseType(str, enum.Enum):
    """Kind of case a billing line originates from."""

    PRIVATE = "private"
    BUSINESS = "business"
    CONTRACT = "contract"


class CaseBillingItemStatus(str, enum.Enum):
    """Status of a case line; ``billed`` means it was copied to contract billing."""

    PENDING = "pending"
    APPROVED = "approved"
    BILLED = "billed"
    CANCELLED = "cancelled"


CASE_TYPE_ENUM = SAEnum(
    CaseType,
    name="case_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

CASE_BILLING_ITEM_STATUS_ENUM = SAEnum(
    CaseBillingItemStatus,
    name="case_billing_item_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class CaseBillingItem(Base):
    """Article added to a case by the technician who performed the work."""

    __tablename__ = "case_billing_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_case_billing_items_quantity_positive"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_case_billing_items_discount_range",
        ),
        Index("case_billing_items_case_idx", "case_id", "case_type"),
    )

    id = Column("case_billing_item_id", GUID(), primary_key=True, default=new_id)
    case_id = Column(String, nullable=False)
    case_type = Column(CASE_TYPE_ENUM, nullable=False)
    customer_id = Column(
        GUID(),
        ForeignKey("customers.customer_id", ondelete="SET NULL"),
        nullable=True,
    )
    article_id = Column(
        GUID(),
        ForeignKey("articles.article_id", ondelete="SET NULL"),
        nullable=True,
    )
    article_code = Column(String, nullable=True)
    article_name = Column(String, nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discounted_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=25)
    requires_approval = Column(Boolean, nullable=False, default=False)
    service_date = Column(Date, nullable=True)
    status = Column(
        CASE_BILLING_ITEM_STATUS_ENUM,
        nullable=False,
        default=CaseBillingItemStatus.PENDING,
    )
    billed_at = Column(DateTime(timezone=True), nullable=True)
    billing_item_id = Column(
        GUID(),
        ForeignKey("contract_billing_items.billing_item_id", ondelete="SET NULL"),
        nullable=True,
    )
    added_by_technician_name = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer")
    article = relationship("Article")
