"""Tests for snapshot construction and field coercion."""

import uuid
from datetime import date, datetime, timezone

import pytest

from app.exceptions import ComputationError
from app.models.shipment import Shipment, ShipmentDirection, ShipmentStatus, TransportLeg
from app.status_engine.snapshot import (
    SnapshotReader,
    build_snapshot,
    coerce_amount,
    coerce_date,
    summarize_transport,
)


def leg(plate=None, delivered_at=None, is_deleted=False) -> TransportLeg:
    return TransportLeg(
        id=uuid.uuid4(),
        shipment_id=uuid.uuid4(),
        truck_plate_number=plate,
        delivered_at=delivered_at,
        is_deleted=is_deleted,
    )


class TestCoercion:

    def test_coerce_date_accepts_dates_datetimes_and_iso_strings(self):
        assert coerce_date(date(2026, 1, 2), "eta") == date(2026, 1, 2)
        assert coerce_date(datetime(2026, 1, 2, 23, 0, tzinfo=timezone.utc), "eta") == date(2026, 1, 2)
        assert coerce_date("2026-01-02T10:00:00", "eta") == date(2026, 1, 2)
        assert coerce_date("", "eta") is None
        assert coerce_date(None, "eta") is None

    def test_coerce_date_rejects_garbage(self):
        with pytest.raises(ComputationError, match="eta"):
            coerce_date("next tuesday", "eta")

    def test_coerce_amount(self):
        assert coerce_amount("1500.50", "total_value_usd") == 1500.5
        with pytest.raises(ComputationError):
            coerce_amount("lots", "total_value_usd")


class TestSnapshotFromRow:

    def test_corrupt_values_read_as_absent(self):
        # Values written around the ORM, e.g. by a legacy import
        shipment = Shipment(
            id=uuid.uuid4(),
            sn="SN-1",
            eta="31/31/2026",
            total_value_usd="n/a",
            booking_reference="BL-9",
        )
        snapshot = build_snapshot(shipment)
        assert snapshot.eta is None
        assert snapshot.total_value_usd is None
        assert snapshot.booking_reference == "BL-9"

    def test_unknown_direction_defaults_to_incoming(self):
        shipment = Shipment(id=uuid.uuid4(), sn="SN-2", direction="sideways")
        assert build_snapshot(shipment).direction == ShipmentDirection.INCOMING

    def test_balance(self):
        paid = build_snapshot(Shipment(id=uuid.uuid4(), sn="SN-3", total_value_usd=1000, paid_value_usd=400))
        assert paid.balance_value_usd == 600
        unpaid = build_snapshot(Shipment(id=uuid.uuid4(), sn="SN-4", total_value_usd=1000))
        assert unpaid.balance_value_usd == 1000
        assert build_snapshot(Shipment(id=uuid.uuid4(), sn="SN-5")).balance_value_usd is None


class TestTransportSummary:

    def test_no_legs(self):
        assert summarize_transport([]) == (False, False, None)

    def test_assigned_leg_is_underway(self):
        assert summarize_transport([leg(plate="12-345")]) == (True, True, None)

    def test_leg_without_plate_is_not_assigned(self):
        assert summarize_transport([leg(plate="  ")]) == (False, False, None)

    def test_partial_assignment_is_underway(self):
        assigned, underway, delivered_on = summarize_transport([leg(plate="A"), leg()])
        assert assigned and underway
        assert delivered_on is None

    def test_all_delivered_gives_latest_date(self):
        legs = [leg(plate="A", delivered_at=date(2026, 3, 1)), leg(plate="B", delivered_at=date(2026, 3, 4))]
        assert summarize_transport(legs) == (True, False, date(2026, 3, 4))

    def test_deleted_legs_are_ignored(self):
        assert summarize_transport([leg(plate="A", is_deleted=True)]) == (False, False, None)


class TestBuildSnapshot:

    def test_override_is_current_status(self):
        shipment = Shipment(
            id=uuid.uuid4(),
            sn="SN-1",
            direction=ShipmentDirection.OUTGOING,
            status=ShipmentStatus.SAILED,
            status_override=ShipmentStatus.DELAYED,
        )
        assert build_snapshot(shipment).current_status == ShipmentStatus.DELAYED

    def test_delivery_date_falls_back_to_legs(self):
        shipment = Shipment(id=uuid.uuid4(), sn="SN-2", direction=ShipmentDirection.INCOMING)
        snapshot = build_snapshot(shipment, [leg(plate="A", delivered_at=date(2026, 3, 2))])
        assert snapshot.delivery_date == date(2026, 3, 2)
        assert snapshot.transport_assigned
        assert not snapshot.transport_underway


class TestSnapshotReader:

    @pytest.mark.asyncio
    async def test_load_active_skips_deleted(self, db_session, make_shipment, add_leg):
        kept = await make_shipment(sn="SN-A-KEEP")
        await make_shipment(sn="SN-A-GONE", is_deleted=True)
        await add_leg(kept, truck_plate_number="77-123")

        loaded = await SnapshotReader.load_active(db_session)
        sns = [s.sn for s, _ in loaded]
        assert "SN-A-KEEP" in sns
        assert "SN-A-GONE" not in sns

        snapshot = dict((s.sn, snap) for s, snap in loaded)["SN-A-KEEP"]
        assert snapshot.transport_underway

    @pytest.mark.asyncio
    async def test_get_shipment_hides_deleted(self, db_session, make_shipment):
        gone = await make_shipment(is_deleted=True)
        assert await SnapshotReader.get_shipment(db_session, gone.id) is None
