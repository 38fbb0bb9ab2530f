"""
Module: stock_kernel.selectors.catalog_selector
Responsibility: SQL-backed ProductCatalog and LocationDirectory over the
    ``products`` and ``locations`` tables.
Architecture position: Kernel > Selectors.  Each lookup opens a short-lived
    session from the factory, so instances can be shared across threads.

Failure modes:
    - ProductNotFoundError for unknown unit codes and product refs.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.domain.catalog import LocationRef, ProductInfo
from stock_kernel.exceptions import ProductNotFoundError
from stock_kernel.models.catalog import Location, Product


class SqlProductCatalog:
    """ProductCatalog reading the products table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _find(self, column, value: str) -> ProductInfo | None:
        with self._session_factory() as session:
            row = session.execute(
                select(Product).where(column == value)
            ).scalar_one_or_none()
            return row.to_info() if row is not None else None

    def resolve(self, unit_code: str) -> ProductInfo:
        info = self._find(Product.unit_code, unit_code)
        if info is None:
            raise ProductNotFoundError(unit_code)
        return info

    def describe(self, product_ref: str) -> ProductInfo:
        info = self._find(Product.product_ref, product_ref)
        if info is None:
            raise ProductNotFoundError(product_ref, "product_ref")
        return info

    def all(self) -> tuple[ProductInfo, ...]:
        with self._session_factory() as session:
            rows = session.execute(
                select(Product).order_by(Product.product_ref)
            ).scalars()
            return tuple(row.to_info() for row in rows)


class SqlLocationDirectory:
    """LocationDirectory reading the locations table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, location_id: str) -> LocationRef:
        with self._session_factory() as session:
            row = session.execute(
                select(Location).where(Location.location_id == location_id)
            ).scalar_one_or_none()
            if row is None:
                return LocationRef.unknown(location_id)
            return row.to_ref()

    def all(self) -> tuple[LocationRef, ...]:
        with self._session_factory() as session:
            rows = session.execute(
                select(Location).order_by(Location.location_id)
            ).scalars()
            return tuple(row.to_ref() for row in rows)
