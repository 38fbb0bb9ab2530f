"""MovementValidator -- Pure structural validation of movement drafts."""

from datetime import date, datetime

from stock_kernel.domain.dtos import MovementDraft, ValidationError, ValidationResult
from stock_kernel.domain.values import MovementReason
from stock_kernel.logging_config import get_logger

logger = get_logger("domain.movement_validator")

MAX_LOT_LENGTH = 100
MAX_REF_LENGTH = 100


def validate_movement(draft: MovementDraft) -> ValidationResult:
    """Validate a movement draft at the ledger boundary."""
    errors: list[ValidationError] = []

    errors.extend(validate_quantity(draft.quantity))
    errors.extend(validate_reason(draft.reason))
    errors.extend(validate_endpoints(draft.source_location, draft.dest_location))
    errors.extend(validate_identity(draft.product_ref, draft.lot_number))
    errors.extend(validate_dates(draft.expiry_date, draft.effective_date))

    if errors:
        logger.warning(
            "movement_validation_failed",
            extra={
                "product_ref": draft.product_ref,
                "error_count": len(errors),
                "error_codes": [e.code for e in errors],
            },
        )
        return ValidationResult.failure(*errors)

    logger.debug(
        "movement_validation_passed",
        extra={"product_ref": draft.product_ref},
    )
    return ValidationResult.success()


def validate_quantity(quantity: object) -> list[ValidationError]:
    """Quantity must be a positive integer."""
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return [
            ValidationError(
                code="INVALID_QUANTITY",
                message=f"Quantity must be an integer, got {type(quantity).__name__}",
                field="quantity",
            )
        ]
    if quantity <= 0:
        return [
            ValidationError(
                code="INVALID_QUANTITY",
                message=f"Quantity must be positive, got {quantity}",
                field="quantity",
                details={"quantity": quantity},
            )
        ]
    return []


def validate_reason(reason: object) -> list[ValidationError]:
    """Reason must be one of the enumerated movement reasons."""
    if MovementReason.parse(reason) is None:
        return [
            ValidationError(
                code="INVALID_REASON",
                message=f"Unknown movement reason: {reason!r}",
                field="reason",
                details={"allowed": [r.value for r in MovementReason]},
            )
        ]
    return []


def validate_endpoints(
    source_location: str | None,
    dest_location: str | None,
) -> list[ValidationError]:
    """
    At most one endpoint may be None (the external boundary).

    Both None describes no movement at all; the same location on both sides
    would net to zero on replay and hide the event.
    """
    if not source_location and not dest_location:
        return [
            ValidationError(
                code="MISSING_ENDPOINTS",
                message="Movement needs a source or a destination location",
                field="source_location",
            )
        ]
    if source_location is not None and source_location == dest_location:
        return [
            ValidationError(
                code="SAME_ENDPOINTS",
                message=f"Source and destination are both {source_location}",
                field="dest_location",
                details={"location": source_location},
            )
        ]
    errors: list[ValidationError] = []
    for name, value in (("source_location", source_location), ("dest_location", dest_location)):
        if value is not None and not value.strip():
            errors.append(
                ValidationError(
                    code="BLANK_LOCATION",
                    message=f"{name} must be None or a non-blank id",
                    field=name,
                )
            )
    return errors


def validate_identity(product_ref: object, lot_number: object) -> list[ValidationError]:
    """Product ref is required; the lot number may be empty but must be text."""
    errors: list[ValidationError] = []
    if not isinstance(product_ref, str) or not product_ref.strip():
        errors.append(
            ValidationError(
                code="MISSING_PRODUCT",
                message="Product reference is required",
                field="product_ref",
            )
        )
    elif len(product_ref) > MAX_REF_LENGTH:
        errors.append(
            ValidationError(
                code="PRODUCT_REF_TOO_LONG",
                message=f"Product reference exceeds {MAX_REF_LENGTH} characters",
                field="product_ref",
            )
        )
    if not isinstance(lot_number, str):
        errors.append(
            ValidationError(
                code="MISSING_LOT",
                message="Lot number must be a string",
                field="lot_number",
            )
        )
    elif len(lot_number) > MAX_LOT_LENGTH:
        errors.append(
            ValidationError(
                code="LOT_TOO_LONG",
                message=f"Lot number exceeds {MAX_LOT_LENGTH} characters",
                field="lot_number",
            )
        )
    return errors


def validate_dates(
    expiry_date: object,
    effective_date: object,
) -> list[ValidationError]:
    """Dates, when present, must be ``date`` values."""
    errors: list[ValidationError] = []
    for name, value in (("expiry_date", expiry_date), ("effective_date", effective_date)):
        if value is not None and (
            isinstance(value, datetime) or not isinstance(value, date)
        ):
            errors.append(
                ValidationError(
                    code="INVALID_DATE",
                    message=f"{name} must be a date, got {type(value).__name__}",
                    field=name,
                )
            )
    return errors
