"""Models for articles and customer-specific price lists."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id


class Article(Base):
    """Billable article (service, product or fee) with its default price."""

    __tablename__ = "articles"
    __table_args__ = (
        CheckConstraint("default_price >= 0", name="ck_articles_default_price_non_negative"),
    )

    id = Column("article_id", GUID(), primary_key=True, default=new_id)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    default_price = Column(Numeric(12, 2), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=True)
    unit = Column(String, nullable=True)
    category = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    price_list_items = relationship("PriceListItem", back_populates="article")


class PriceList(Base):
    """Named set of contracted prices assigned to one or more customers."""

    __tablename__ = "price_lists"

    id = Column("price_list_id", GUID(), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "PriceListItem",
        back_populates="price_list",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    customers = relationship("Customer", back_populates="price_list")


class PriceListItem(Base):
    """Contracted price of one article inside a price list."""

    __tablename__ = "price_list_items"
    __table_args__ = (
        UniqueConstraint(
            "price_list_id", "article_id", name="price_list_items_unique_article"
        ),
        CheckConstraint("custom_price >= 0", name="ck_price_list_items_price_non_negative"),
    )

    id = Column("price_list_item_id", GUID(), primary_key=True, default=new_id)
    price_list_id = Column(
        GUID(),
        ForeignKey("price_lists.price_list_id", ondelete="CASCADE"),
        nullable=False,
    )
    article_id = Column(
        GUID(),
        ForeignKey("articles.article_id", ondelete="CASCADE"),
        nullable=False,
    )
    custom_price = Column(Numeric(12, 2), nullable=False)

    price_list = relationship("PriceList", back_populates="items")
    article = relationship("Article", back_populates="price_list_items")
