"""
Module: stock_kernel.selectors.base
Responsibility: Common base for the read side of the kernel.
Architecture position: Kernel > Selectors.  Uses db/, models/ and domain/
    DTOs; never services/.

Selectors run queries on a session they are given and return frozen DTOs
(StockMovementEvent, ProductInfo, LocationRef), never ORM rows, so nothing
outside the kernel can reach a mapped object and mutate it.  They never
add, delete, flush or commit; the caller owns the session and its scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only queries over one mapped table."""

    def __init__(self, session: Session):
        self.session = session
