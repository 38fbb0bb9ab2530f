"""
Tests for MovementLedger.

Covers:
- Append assigns seq, recorded_at (from the injected clock) and business_date
- Rejected drafts write nothing
- Idempotency: duplicate vs. conflicting payload
- Exchange workflow: two idempotent appends, crash between legs, retry
- Streaming queries: filters, ledger order, cancellation, count, get
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from stock_kernel.domain.cancellation import CancellationToken
from stock_kernel.domain.dtos import (
    AppendStatus,
    ExchangeRequest,
    MovementDraft,
    MovementFilter,
)
from stock_kernel.domain.values import DateBasis, ExchangeLeg, MovementReason, WarningKind
from stock_kernel.exceptions import (
    ExchangeRequestError,
    IdempotencyConflictError,
    MovementNotFoundError,
    MovementValidationError,
    QueryCancelledError,
)

EXP = date(2025, 12, 31)


def _receive(quantity=50, lot="LOT1", **overrides) -> MovementDraft:
    fields = dict(
        product_ref="PRODUCT-A",
        lot_number=lot,
        quantity=quantity,
        reason=MovementReason.PURCHASE,
        source_location="CLIENT-MEDCO",
        dest_location="WAREHOUSE",
        expiry_date=EXP,
    )
    fields.update(overrides)
    return MovementDraft(**fields)


def _exchange(exchange_id, with_inbound=True) -> ExchangeRequest:
    outbound = MovementDraft(
        product_ref="PRODUCT-A",
        lot_number="OLD",
        quantity=2,
        reason=MovementReason.EXCHANGE_OUT,
        source_location="HOSPITAL-X",
        dest_location="WAREHOUSE",
        expiry_date=date(2024, 6, 1),
    )
    inbound = MovementDraft(
        product_ref="PRODUCT-A",
        lot_number="NEW",
        quantity=2,
        reason=MovementReason.EXCHANGE_IN,
        source_location="WAREHOUSE",
        dest_location="HOSPITAL-X",
        expiry_date=date(2025, 6, 1),
    )
    return ExchangeRequest(
        exchange_id=exchange_id,
        outbound=outbound,
        inbound=inbound if with_inbound else None,
    )


class TestAppend:
    def test_append_assigns_ledger_fields(self, ledger, clock):
        result = ledger.append(_receive())

        assert result.status == AppendStatus.ACCEPTED
        event = result.event
        assert event.seq == 1
        assert event.recorded_at == clock.now_utc()
        assert event.recorded_at.tzinfo is not None
        assert event.business_date == date(2024, 5, 15)
        assert event.effective_date is None
        assert event.reason == MovementReason.PURCHASE

    def test_effective_date_drives_business_date(self, ledger):
        event = ledger.append(_receive(effective_date=date(2024, 4, 30))).event
        assert event.business_date == date(2024, 4, 30)

    def test_seq_strictly_increases(self, ledger, clock):
        seqs = []
        for lot in ("A", "B", "C"):
            clock.tick()
            seqs.append(ledger.append(_receive(lot=lot)).event.seq)
        assert seqs == [1, 2, 3]

    def test_string_reason_is_stored_as_enum(self, ledger):
        event = ledger.append(_receive(reason="purchase")).event
        assert event.reason is MovementReason.PURCHASE

    def test_invalid_draft_writes_nothing(self, ledger, captured_logs):
        with pytest.raises(MovementValidationError) as exc_info:
            ledger.append(_receive(quantity=0))

        assert exc_info.value.code == "MOVEMENT_VALIDATION"
        assert ledger.count() == 0
        assert any(r["message"] == "movement_rejected" for r in captured_logs())

    def test_append_is_logged(self, ledger, captured_logs):
        ledger.append(_receive())
        record = next(r for r in captured_logs() if r["message"] == "movement_appended")
        assert record["seq"] == 1
        assert record["reason"] == "purchase"


class TestIdempotency:
    def test_same_key_same_payload_is_duplicate(self, ledger, clock):
        first = ledger.append(_receive(), idempotency_key="scan-1")
        clock.advance(60)
        second = ledger.append(_receive(), idempotency_key="scan-1")

        assert second.status == AppendStatus.DUPLICATE
        assert second.is_duplicate
        assert second.event_id == first.event_id
        assert second.event.recorded_at == first.event.recorded_at
        assert ledger.count() == 1

    def test_same_key_different_payload_conflicts(self, ledger):
        ledger.append(_receive(quantity=5), idempotency_key="scan-1")

        with pytest.raises(IdempotencyConflictError) as exc_info:
            ledger.append(_receive(quantity=6), idempotency_key="scan-1")

        assert exc_info.value.idempotency_key == "scan-1"
        assert ledger.count() == 1

    def test_no_key_appends_every_time(self, ledger):
        ledger.append(_receive())
        ledger.append(_receive())
        assert ledger.count() == 2


class TestExchange:
    def test_both_legs_recorded(self, ledger):
        exchange_id = uuid4()

        receipt = ledger.append_exchange(_exchange(exchange_id))

        assert receipt.is_complete
        out, inb = receipt.outbound.event, receipt.inbound.event
        assert (out.exchange_leg, inb.exchange_leg) == (ExchangeLeg.OUTBOUND, ExchangeLeg.INBOUND)
        assert out.exchange_id == inb.exchange_id == exchange_id
        assert out.expects_companion
        assert out.idempotency_key == f"exchange:{exchange_id}:out"
        assert ledger.exchange_warnings() == ()

    def test_outbound_only_exchange_is_complete(self, ledger):
        receipt = ledger.append_exchange(_exchange(uuid4(), with_inbound=False))

        assert receipt.inbound is None
        assert receipt.is_complete
        assert not receipt.outbound.event.expects_companion
        assert ledger.exchange_warnings() == ()

    def test_wrong_leg_reason_rejected_before_writing(self, ledger):
        request = _exchange(uuid4())
        bad = ExchangeRequest(
            exchange_id=request.exchange_id,
            outbound=request.inbound,
            inbound=request.outbound,
        )

        with pytest.raises(ExchangeRequestError):
            ledger.append_exchange(bad)
        assert ledger.count() == 0

    def test_invalid_inbound_leg_rejects_whole_exchange(self, ledger):
        request = _exchange(uuid4())
        broken = ExchangeRequest(
            exchange_id=request.exchange_id,
            outbound=request.outbound,
            inbound=MovementDraft(
                product_ref="PRODUCT-A",
                lot_number="NEW",
                quantity=-1,
                reason=MovementReason.EXCHANGE_IN,
                dest_location="HOSPITAL-X",
            ),
        )

        with pytest.raises(MovementValidationError):
            ledger.append_exchange(broken)
        assert ledger.count() == 0

    def test_crash_between_legs_then_retry(self, ledger, monkeypatch):
        request = _exchange(uuid4())
        real_append = ledger._append

        def crash_on_inbound(draft, key, **kwargs):
            if kwargs.get("exchange_leg") == ExchangeLeg.INBOUND:
                raise RuntimeError("process died")
            return real_append(draft, key, **kwargs)

        monkeypatch.setattr(ledger, "_append", crash_on_inbound)
        with pytest.raises(RuntimeError):
            ledger.append_exchange(request)

        warnings = ledger.exchange_warnings()
        assert [w.kind for w in warnings] == [WarningKind.MISSING_EXCHANGE_COMPANION]
        assert warnings[0].exchange_id == request.exchange_id

        monkeypatch.setattr(ledger, "_append", real_append)
        receipt = ledger.append_exchange(request)

        assert receipt.outbound.status == AppendStatus.DUPLICATE
        assert receipt.inbound.status == AppendStatus.ACCEPTED
        assert ledger.exchange_warnings() == ()
        assert ledger.count() == 2


class TestQuery:
    @pytest.fixture
    def populated(self, ledger, clock):
        ledger.append(_receive(quantity=50))
        clock.advance_days(1)
        ledger.append(
            _receive(
                quantity=20,
                reason=MovementReason.SALE,
                source_location="WAREHOUSE",
                dest_location="HOSPITAL-X",
            )
        )
        clock.advance_days(1)
        ledger.append(
            _receive(
                quantity=3,
                reason=MovementReason.USAGE,
                source_location="HOSPITAL-X",
                dest_location=None,
                effective_date=date(2024, 5, 1),
            )
        )
        return ledger

    def test_streams_in_seq_order(self, populated):
        # batch_size=2 forces more than one fetch
        assert [e.seq for e in populated.query()] == [1, 2, 3]

    def test_location_matches_either_side(self, populated):
        events = list(populated.query(MovementFilter(locations={"HOSPITAL-X"})))
        assert [e.seq for e in events] == [2, 3]

    def test_reason_filter(self, populated):
        events = list(populated.query(MovementFilter(reasons={MovementReason.USAGE})))
        assert [e.quantity for e in events] == [3]

    def test_effective_and_recorded_bases_differ(self, populated):
        effective = MovementFilter(as_of=date(2024, 5, 15), basis=DateBasis.EFFECTIVE)
        recorded = MovementFilter(as_of=date(2024, 5, 15), basis=DateBasis.RECORDED)

        assert [e.seq for e in populated.query(effective)] == [1, 3]
        assert [e.seq for e in populated.query(recorded)] == [1]

    def test_sql_filter_agrees_with_in_memory_filter(self, populated):
        f = MovementFilter(
            locations={"WAREHOUSE"},
            date_from=date(2024, 5, 15),
            date_to=date(2024, 5, 17),
            basis=DateBasis.RECORDED,
        )
        everything = list(populated.query())
        assert [e.seq for e in populated.query(f)] == [e.seq for e in everything if f.matches(e)]

    def test_cancel_mid_stream(self, populated):
        token = CancellationToken()
        stream = populated.query(cancel=token)

        first = next(stream)
        token.cancel()

        assert first.seq == 1
        with pytest.raises(QueryCancelledError) as exc_info:
            next(stream)
        assert exc_info.value.rows_read == 1

    def test_count(self, populated):
        assert populated.count() == 3
        assert populated.count(MovementFilter(products={"PRODUCT-B"})) == 0

    def test_get(self, populated):
        event = list(populated.query())[0]
        assert populated.get(event.event_id) == event

    def test_get_unknown(self, ledger):
        with pytest.raises(MovementNotFoundError):
            ledger.get(uuid4())

    def test_recorded_at_round_trips_as_utc(self, populated):
        event = list(populated.query())[0]
        assert event.recorded_at == datetime(2024, 5, 15, 9, 0, tzinfo=timezone.utc)
