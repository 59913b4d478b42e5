"""Item model representing a deduplicated product from a retailer."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricetrail.models.base import Base, utcnow

if TYPE_CHECKING:
    from pricetrail.models.price_sample import PriceSample


class Item(Base):
    """Product discovered by a source adapter.

    Each item is uniquely identified by its canonical product URL,
    regardless of which retailer yielded it. ``price`` is the price at
    first discovery; later observations only append PriceSample rows.
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(500), nullable=False, comment="Display name")
    product_url: Mapped[str] = mapped_column(
        String(1000),
        nullable=False,
        comment="Canonical product URL (business key)"
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, index=True)
    source_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Retailer that first yielded this item"
    )

    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("product_url", name="uq_items_product_url"),
        Index("idx_items_source_updated", "source_name", "last_updated"),
    )

    # Samples are removed by ON DELETE CASCADE, never loaded for deletion
    price_samples: Mapped[list["PriceSample"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, name='{self.name[:50]}', source={self.source_name})>"

