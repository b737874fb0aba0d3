"""SQLAlchemy model for contract customers and their billing profile."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id


class BillingFrequency(str, enum.Enum):
    """How often a contract customer is billed."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"
    ON_DEMAND = "on_demand"


class ContractStatus(str, enum.Enum):
    """Lifecycle of the customer's service contract."""

    ACTIVE = "active"
    SIGNED = "signed"
    PENDING = "pending"
    TERMINATED = "terminated"


BILLING_FREQUENCY_ENUM = SAEnum(
    BillingFrequency,
    name="billing_frequency_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)

CONTRACT_STATUS_ENUM = SAEnum(
    ContractStatus,
    name="contract_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Customer(Base):
    """Contract customer as seen by the billing engine.

    Customers are maintained by the CRM side of the console; billing only reads
    the profile fields declared here.
    """

    __tablename__ = "customers"

    id = Column("customer_id", GUID(), primary_key=True, default=new_id)
    company_name = Column(String, nullable=False)
    organization_number = Column(String, nullable=True)
    billing_email = Column(String, nullable=True)
    billing_address = Column(String, nullable=True)
    contact_address = Column(String, nullable=True)
    billing_frequency = Column(BILLING_FREQUENCY_ENUM, nullable=True)
    price_list_id = Column(
        GUID(),
        ForeignKey("price_lists.price_list_id", ondelete="SET NULL"),
        nullable=True,
    )
    monthly_value = Column(Numeric(12, 2), nullable=True)
    contract_status = Column(
        CONTRACT_STATUS_ENUM, nullable=False, default=ContractStatus.ACTIVE
    )
    effective_end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    price_list = relationship("PriceList", back_populates="customers")
    billing_items = relationship(
        "ContractBillingItem",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
