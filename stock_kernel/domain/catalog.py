"""
Catalog lookup contracts consumed by the stock kernel.

Responsibility:
    Describes what the kernel needs from the product / location catalog:
    resolving a scanned product unit code to a product identity, describing
    a product for reports, and classifying locations.  Catalog CRUD lives
    outside the kernel; only these read contracts are consumed.

Architecture position:
    Kernel > Domain -- protocols plus in-memory implementations.  SQL-backed
    implementations live in ``stock_kernel.selectors.catalog_selector``.

Failure modes:
    - ProductNotFoundError from ``resolve`` / ``describe`` for unknown keys.
    - Unknown location ids are NOT errors: ``LocationRef.unknown`` keeps
      reports usable while making the gap visible.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from stock_kernel.domain.values import LocationKind
from stock_kernel.exceptions import ProductNotFoundError


@dataclass(frozen=True)
class ProductInfo:
    """Catalog view of a product."""

    product_ref: str
    unit_code: str
    display_code: str
    owner_client: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class LocationRef:
    """Catalog view of a stock location."""

    location_id: str
    display_name: str
    kind: LocationKind = LocationKind.OTHER

    @property
    def is_central_warehouse(self) -> bool:
        return self.kind == LocationKind.CENTRAL_WAREHOUSE

    @classmethod
    def unknown(cls, location_id: str) -> LocationRef:
        return cls(location_id=location_id, display_name=location_id)


@runtime_checkable
class ProductCatalog(Protocol):
    """Read contract for products."""

    def resolve(self, unit_code: str) -> ProductInfo:
        """Resolve a 14-digit product unit code. Raises ProductNotFoundError."""
        ...

    def describe(self, product_ref: str) -> ProductInfo:
        """Look up a product by its stable ref. Raises ProductNotFoundError."""
        ...

    def all(self) -> tuple[ProductInfo, ...]:
        """Every registered product, ordered by product_ref."""
        ...


@runtime_checkable
class LocationDirectory(Protocol):
    """Read contract for locations."""

    def get(self, location_id: str) -> LocationRef:
        """Return the location, or ``LocationRef.unknown`` when unregistered."""
        ...

    def all(self) -> tuple[LocationRef, ...]:
        """Every registered location."""
        ...


class InMemoryProductCatalog:
    """ProductCatalog over a fixed set of products."""

    def __init__(self, products: Iterable[ProductInfo] = ()):
        self._by_unit_code: dict[str, ProductInfo] = {}
        self._by_ref: dict[str, ProductInfo] = {}
        for product in products:
            self.register(product)

    def register(self, product: ProductInfo) -> None:
        self._by_unit_code[product.unit_code] = product
        self._by_ref[product.product_ref] = product

    def resolve(self, unit_code: str) -> ProductInfo:
        try:
            return self._by_unit_code[unit_code]
        except KeyError:
            raise ProductNotFoundError(unit_code) from None

    def describe(self, product_ref: str) -> ProductInfo:
        try:
            return self._by_ref[product_ref]
        except KeyError:
            raise ProductNotFoundError(product_ref, "product_ref") from None

    def all(self) -> tuple[ProductInfo, ...]:
        return tuple(self._by_ref[ref] for ref in sorted(self._by_ref))


class InMemoryLocationDirectory:
    """LocationDirectory over a fixed set of locations."""

    def __init__(self, locations: Iterable[LocationRef] = ()):
        self._locations: dict[str, LocationRef] = {
            loc.location_id: loc for loc in locations
        }

    def get(self, location_id: str) -> LocationRef:
        return self._locations.get(location_id) or LocationRef.unknown(location_id)

    def all(self) -> tuple[LocationRef, ...]:
        return tuple(self._locations.values())

    def central_warehouses(self) -> tuple[LocationRef, ...]:
        return tuple(loc for loc in self._locations.values() if loc.is_central_warehouse)
