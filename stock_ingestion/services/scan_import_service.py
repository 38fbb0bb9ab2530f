"""
Scan import service: decode -> resolve -> group -> append.

Turns a pasted or scanned block of GS1-128 lines into movement drafts:
every line is decoded, its product unit code resolved through the catalog,
and identical (product, lot, expiry) scans are folded into one draft whose
quantity is the scan count.  Lines that fail to decode, resolve or validate
stay in the batch with their error so the operator can fix them; they never
block the good lines.

Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date

from stock_kernel.domain.catalog import ProductCatalog, ProductInfo
from stock_kernel.domain.dtos import AppendResult, MovementDraft
from stock_kernel.domain.movement_validator import validate_movement, validate_reason
from stock_kernel.domain.values import LotKey, MovementReason
from stock_kernel.exceptions import MovementValidationError, ProductNotFoundError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.ledger_service import MovementLedger
from stock_ingestion.barcode import BarcodeDecoder
from stock_ingestion.domain.types import (
    DecodedBarcode,
    PreparedMovement,
    ScanBatch,
    ScanCommitResult,
    ScanLine,
    ScanLineStatus,
)

logger = get_logger("ingestion.scan_import")


class ScanImportService:
    """
    Prepare and commit barcode scan batches.

    ``prepare`` is read-only (decoder + catalog); ``commit`` is the only
    step that writes, through MovementLedger, with deterministic
    idempotency keys so a re-submitted batch is a no-op.
    """

    def __init__(
        self,
        catalog: ProductCatalog,
        decoder: BarcodeDecoder | None = None,
    ):
        self._catalog = catalog
        self._decoder = decoder or BarcodeDecoder()

    def prepare(
        self,
        text_or_lines: str | Iterable[str],
        *,
        dest_location: str | None,
        reason: MovementReason | str,
        source_location: str | None = None,
        effective_date: date | None = None,
        available: Mapping[LotKey, int] | None = None,
    ) -> ScanBatch:
        """
        Decode, resolve, group and validate a scan batch.

        When ``source_location`` is omitted, each product's owning client is
        used as the source (goods received from the supplier that owns the
        product).

        Each grouped draft goes through the ledger's validator here, so a
        draft the ledger would reject (an over-long lot, matching endpoints)
        marks its lines INVALID instead of failing the commit.

        ``available`` maps lots to their current balance at the source; when
        given, every resolved line carries its lot's balance so the operator
        can see scans of stock the source does not hold.  It never blocks a
        movement.
        """
        errors = validate_reason(reason)
        if errors:
            raise MovementValidationError(tuple(errors))
        reason = MovementReason.parse(reason)

        lines: dict[int, ScanLine] = {}
        groups: dict[LotKey, tuple[ProductInfo, DecodedBarcode, list[int]]] = {}

        for result in self._decoder.decode_batch(text_or_lines):
            if result.decoded is None:
                lines[result.line_number] = ScanLine(
                    line_number=result.line_number,
                    raw=result.raw,
                    status=ScanLineStatus.DECODE_ERROR,
                    error=result.error,
                )
                continue

            decoded = result.decoded
            try:
                product = self._catalog.resolve(decoded.unit_code)
            except ProductNotFoundError as exc:
                lines[result.line_number] = ScanLine(
                    line_number=result.line_number,
                    raw=result.raw,
                    status=ScanLineStatus.NEEDS_REGISTRATION,
                    decoded=decoded,
                    error=exc,
                )
                continue

            lot = LotKey(product.product_ref, decoded.lot_number, decoded.expiry_date)
            lines[result.line_number] = ScanLine(
                line_number=result.line_number,
                raw=result.raw,
                status=ScanLineStatus.READY,
                decoded=decoded,
                product=product,
                available=available.get(lot, 0) if available is not None else None,
            )
            if lot in groups:
                groups[lot][2].append(result.line_number)
            else:
                groups[lot] = (product, decoded, [result.line_number])

        movements: list[PreparedMovement] = []
        for product, decoded, line_numbers in groups.values():
            draft = MovementDraft(
                product_ref=product.product_ref,
                lot_number=decoded.lot_number,
                quantity=len(line_numbers),
                reason=reason,
                source_location=(
                    source_location if source_location is not None else product.owner_client
                ),
                dest_location=dest_location,
                expiry_date=decoded.expiry_date,
                effective_date=effective_date,
            )
            validation = validate_movement(draft)
            if validation:
                movements.append(
                    PreparedMovement(draft=draft, line_numbers=tuple(line_numbers))
                )
                continue
            rejected = MovementValidationError(validation.errors)
            for line_number in line_numbers:
                lines[line_number] = replace(
                    lines[line_number], status=ScanLineStatus.INVALID, error=rejected
                )

        batch = ScanBatch(
            lines=tuple(lines[n] for n in sorted(lines)),
            movements=tuple(movements),
            reason=reason,
            dest_location=dest_location,
            source_location=source_location,
            effective_date=effective_date,
        )
        logger.info(
            "scan_batch_prepared",
            extra={
                "line_count": len(batch.lines),
                "movement_count": len(batch.movements),
                "decode_errors": len(batch.decode_errors),
                "needs_registration": len(batch.needs_registration),
                "invalid": len(batch.invalid),
                "out_of_stock": len(batch.out_of_stock),
            },
        )
        return batch

    def commit(
        self,
        batch: ScanBatch,
        ledger: MovementLedger,
        *,
        batch_key: str,
    ) -> ScanCommitResult:
        """
        Append every prepared movement.

        Each append is idempotent under ``<batch_key>:<lot fingerprint>``, so a
        retry with the same ``batch_key`` skips movements already appended.
        Lines marked INVALID by ``prepare`` have no movement and are not
        attempted.
        """
        results: list[AppendResult] = []
        with LogContext.bind(batch_id=batch_key):
            for movement in batch.movements:
                results.append(
                    ledger.append(
                        movement.draft,
                        idempotency_key=movement.idempotency_key(batch_key),
                    )
                )
            commit = ScanCommitResult(batch_key=batch_key, results=tuple(results))
            logger.info(
                "scan_batch_committed",
                extra={
                    "accepted": commit.accepted,
                    "duplicates": commit.duplicates,
                },
            )
        return commit
