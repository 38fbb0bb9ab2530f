"""
stock_ingestion.barcode -- GS1-128 decoder for scanned medical-device labels.

Line format (no separators besides the two-digit application identifiers):

    01 + 14 digits (product unit code)
    17 + 6 digits  (expiry, YYMMDD, century 20YY)
    10 + rest of the line (lot, variable length)

Decoding is pure.  A batch decodes every line independently: one malformed
line never aborts the others, and each result keeps the raw text for
operator review.

Month must be 1-12 and day 1-31; the day is not checked against the month.
A day past the end of its month (``230231``) is clamped to the month's last
day so the expiry can be carried as a ``date``.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterable
from datetime import date

from stock_kernel.exceptions import (
    DecodeError,
    InvalidExpiryError,
    InvalidLotError,
    InvalidPrefixError,
    InvalidProductCodeError,
)
from stock_kernel.logging_config import get_logger
from stock_ingestion.domain.types import BarcodeLineResult, DecodedBarcode

logger = get_logger("ingestion.barcode")

AI_PRODUCT = "01"
AI_EXPIRY = "17"
AI_LOT = "10"

UNIT_CODE_LENGTH = 14
EXPIRY_LENGTH = 6

# ASCII only: \d would also accept Arabic-Indic and fullwidth digits
_DIGITS = re.compile(r"[0-9]+")


def parse_expiry(raw: str, yymmdd: str) -> date:
    """YYMMDD -> date in 20YY; raises InvalidExpiryError."""
    if len(yymmdd) != EXPIRY_LENGTH or not _DIGITS.fullmatch(yymmdd):
        raise InvalidExpiryError(raw, f"Expiry must be 6 digits, got {yymmdd!r}")
    year = 2000 + int(yymmdd[0:2])
    month = int(yymmdd[2:4])
    day = int(yymmdd[4:6])
    if not 1 <= month <= 12:
        raise InvalidExpiryError(raw, f"Expiry month {month} out of range")
    if not 1 <= day <= 31:
        raise InvalidExpiryError(raw, f"Expiry day {day} out of range")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


class BarcodeDecoder:
    """Stateless AI 01 / 17 / 10 decoder."""

    def decode(self, line: str) -> DecodedBarcode:
        """
        Decode one line.

        Raises:
            InvalidPrefixError: line (after trimming) does not start with 01.
            InvalidProductCodeError: 01 not followed by 14 digits.
            InvalidExpiryError: 17 missing, or not a valid YYMMDD.
            InvalidLotError: 10 missing, or nothing after it.
        """
        raw = line
        text = line.strip()

        if not text.startswith(AI_PRODUCT):
            raise InvalidPrefixError(raw, "Barcode must start with AI 01")

        pos = len(AI_PRODUCT)
        unit_code = text[pos:pos + UNIT_CODE_LENGTH]
        if len(unit_code) != UNIT_CODE_LENGTH or not _DIGITS.fullmatch(unit_code):
            raise InvalidProductCodeError(
                raw, f"AI 01 needs {UNIT_CODE_LENGTH} digits, got {unit_code!r}"
            )
        pos += UNIT_CODE_LENGTH

        if not text.startswith(AI_EXPIRY, pos):
            raise InvalidExpiryError(raw, "Expected AI 17 after the product code")
        pos += len(AI_EXPIRY)
        expiry_raw = text[pos:pos + EXPIRY_LENGTH]
        expiry = parse_expiry(raw, expiry_raw)
        pos += EXPIRY_LENGTH

        if not text.startswith(AI_LOT, pos):
            raise InvalidLotError(raw, "Expected AI 10 after the expiry")
        pos += len(AI_LOT)
        lot = text[pos:]
        if not lot:
            raise InvalidLotError(raw, "Lot number cannot be empty")

        return DecodedBarcode(
            unit_code=unit_code,
            expiry_date=expiry,
            lot_number=lot,
            raw=text,
            expiry_raw=expiry_raw,
        )

    def decode_batch(self, lines: str | Iterable[str]) -> tuple[BarcodeLineResult, ...]:
        """
        Decode many lines, collecting errors per line.

        A string is split on newlines and blank lines are skipped; line
        numbers still refer to the original text.  An explicit iterable is
        decoded entry by entry, blanks included.
        """
        if isinstance(lines, str):
            numbered = [
                (i, text)
                for i, text in enumerate(lines.splitlines(), start=1)
                if text.strip()
            ]
        else:
            numbered = list(enumerate(lines, start=1))

        results: list[BarcodeLineResult] = []
        for line_number, text in numbered:
            try:
                decoded = self.decode(text)
            except DecodeError as exc:
                results.append(
                    BarcodeLineResult(line_number=line_number, raw=text, error=exc)
                )
            else:
                results.append(
                    BarcodeLineResult(line_number=line_number, raw=text, decoded=decoded)
                )

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(
                "barcode_batch_decoded_with_errors",
                extra={
                    "line_count": len(results),
                    "error_count": failed,
                    "error_codes": sorted({r.error_code for r in results if r.error}),
                },
            )
        else:
            logger.debug("barcode_batch_decoded", extra={"line_count": len(results)})
        return tuple(results)
