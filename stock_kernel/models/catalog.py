"""
Module: stock_kernel.models.catalog
Responsibility: Read-side ORM mapping of the product and location catalog.
Architecture position: Kernel > Models.  The kernel only reads these tables
    (see selectors/catalog_selector.py); catalog maintenance happens
    elsewhere.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.domain.catalog import LocationRef, ProductInfo
from stock_kernel.domain.values import LocationKind


class Product(Base):
    """A registered medical device product."""

    __tablename__ = "products"

    product_ref: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    # 14-digit GTIN carried by AI 01
    unit_code: Mapped[str] = mapped_column(String(14), nullable=False, unique=True)

    display_code: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_client: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_info(self) -> ProductInfo:
        return ProductInfo(
            product_ref=self.product_ref,
            unit_code=self.unit_code,
            display_code=self.display_code,
            owner_client=self.owner_client,
            description=self.description,
        )


class Location(Base):
    """A stock location: warehouse, hospital, supplier."""

    __tablename__ = "locations"

    location_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=LocationKind.OTHER.value,
    )

    def to_ref(self) -> LocationRef:
        return LocationRef(
            location_id=self.location_id,
            display_name=self.display_name,
            kind=LocationKind(self.kind),
        )
