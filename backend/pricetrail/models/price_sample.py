"""Price history tracking for items."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricetrail.models.base import Base, utcnow

if TYPE_CHECKING:
    from pricetrail.models.item import Item


class PriceSample(Base):
    """One immutable price observation for an item.

    Samples are append-only and only written when the price differs from
    the previous sample, giving a sparse time series.
    """

    __tablename__ = "price_samples"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, comment="Price at this point in time")

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
        comment="When this price was recorded"
    )

    source: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Source tag, usually the retailer name"
    )

    __table_args__ = (
        Index("idx_price_samples_item_recorded", "item_id", "recorded_at"),
    )

    item: Mapped["Item"] = relationship(back_populates="price_samples", lazy="raise")

    def __repr__(self) -> str:
        return f"<PriceSample(id={self.id}, item_id={self.item_id}, price={self.price}, recorded_at={self.recorded_at})>"
