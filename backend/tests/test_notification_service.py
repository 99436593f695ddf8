"""Tests for NotificationService: scan, dedup, failure isolation, inbox actions."""

import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.audit_log.service import AuditService
from app.config import Settings
from app.exceptions import NotFoundError
from app.models.notification import Notification, NotificationSeverity
from app.models.shipment import ShipmentDirection
from app.notification_engine import service as notification_service_module
from app.notification_engine.service import NotificationService
from app.status_engine.locks import ShipmentLocks

TODAY = date(2026, 3, 15)
OUT = ShipmentDirection.OUTGOING


def days(n: int) -> date:
    return TODAY + timedelta(days=n)


@pytest.fixture
def service():
    return NotificationService(Settings(), ShipmentLocks(timeout=5))


async def notifications_for(db, shipment_id) -> list[Notification]:
    result = await db.execute(select(Notification).where(Notification.shipment_id == shipment_id))
    return list(result.scalars().all())


class TestRunCheck:

    @pytest.mark.asyncio
    async def test_critical_deadline_created_once(self, db_session, make_shipment, service):
        # Outgoing shipment due to ship tomorrow with no booking reference
        shipment = await make_shipment(direction=OUT, agreed_shipping_date=days(1))

        first = await service.run_check(db_session, today=TODAY)
        second = await service.run_check(db_session, today=TODAY)

        assert first.created == 1
        assert second.created == 0
        rows = await notifications_for(db_session, shipment.id)
        assert len(rows) == 1
        assert rows[0].rule_id == "seller_shipping_deadline"
        assert rows[0].severity == NotificationSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_send_original_documents_warning(self, db_session, make_shipment, service):
        shipment = await make_shipment(
            direction=OUT,
            total_value_usd=100000,
            paid_value_usd=100000,
            docs_draft_approved=True,
            original_docs_sent=False,
        )
        await service.run_check(db_session, today=TODAY)

        rows = await notifications_for(db_session, shipment.id)
        assert [(n.rule_id, n.severity) for n in rows] == [
            ("seller_send_original_docs", NotificationSeverity.WARNING)
        ]

    @pytest.mark.asyncio
    async def test_two_rules_create_two_notifications(self, db_session, make_shipment, service):
        shipment = await make_shipment(
            direction=OUT,
            agreed_shipping_date=days(1),
            total_value_usd=5000,
            paid_value_usd=5000,
            docs_draft_approved=True,
        )
        result = await service.run_check(db_session, today=TODAY)

        assert result.created == 2
        rule_ids = {n.rule_id for n in await notifications_for(db_session, shipment.id)}
        assert rule_ids == {"seller_shipping_deadline", "seller_send_original_docs"}

    @pytest.mark.asyncio
    async def test_deleted_shipments_are_not_scanned(self, db_session, make_shipment, service):
        await make_shipment(direction=OUT, agreed_shipping_date=days(1), is_deleted=True)
        result = await service.run_check(db_session, today=TODAY)
        assert result.evaluated == 0
        assert result.created == 0

    @pytest.mark.asyncio
    async def test_condition_clearing_keeps_notification(self, db_session, make_shipment, service):
        shipment = await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)

        shipment.booking_reference = "BL-555"
        await db_session.flush()
        await service.run_check(db_session, today=TODAY)

        rows = await notifications_for(db_session, shipment.id)
        assert len(rows) == 1
        assert rows[0].is_dismissed is False

    @pytest.mark.asyncio
    async def test_dismissal_lets_rule_fire_again(self, db_session, make_shipment, service):
        shipment = await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)
        [notification] = await notifications_for(db_session, shipment.id)

        await service.dismiss(db_session, notification.id, actor="ops.lead")
        result = await service.run_check(db_session, today=TODAY)

        assert result.created == 1
        rows = await notifications_for(db_session, shipment.id)
        assert sorted(n.is_dismissed for n in rows) == [False, True]

    @pytest.mark.asyncio
    async def test_storage_failure_is_isolated(self, db_session, make_shipment):
        bad = await make_shipment(sn="SN-F-BAD", direction=OUT, agreed_shipping_date=days(1))
        good = await make_shipment(sn="SN-F-GOOD", direction=OUT, agreed_shipping_date=days(1))

        class FlakyNotificationService(NotificationService):
            async def _insert(self, db, shipment_id, candidate):
                if shipment_id == bad.id:
                    raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))
                return await super()._insert(db, shipment_id, candidate)

        service = FlakyNotificationService(Settings(), ShipmentLocks(timeout=5))
        result = await service.run_check(db_session, today=TODAY)

        assert result.evaluated == 2
        assert result.created == 1
        assert result.failed == 1
        assert result.skipped_shipment_ids == [bad.id]
        assert len(await notifications_for(db_session, good.id)) == 1
        assert await notifications_for(db_session, bad.id) == []

    @pytest.mark.asyncio
    async def test_out_of_range_free_time_does_not_stop_the_scan(self, db_session, make_shipment, service):
        odd = await make_shipment(sn="SN-F-ODD", eta=days(-3), free_time_days=3_000_000)
        good = await make_shipment(sn="SN-F-OK", direction=OUT, agreed_shipping_date=days(1))

        result = await service.run_check(db_session, today=TODAY)

        assert result.evaluated == 2
        assert result.failed == 0
        assert await notifications_for(db_session, odd.id) == []
        [notification] = await notifications_for(db_session, good.id)
        assert notification.rule_id == "seller_shipping_deadline"

    @pytest.mark.asyncio
    async def test_unexpected_error_skips_only_that_shipment(self, db_session, make_shipment, monkeypatch):
        bad = await make_shipment(sn="SN-F-ERR", direction=OUT, agreed_shipping_date=days(1))
        good = await make_shipment(sn="SN-F-FINE", direction=OUT, agreed_shipping_date=days(1))

        real_evaluate = notification_service_module.evaluate_rules

        def evaluate(snapshot, today, cfg):
            if snapshot.id == bad.id:
                raise ValueError("corrupt snapshot")
            return real_evaluate(snapshot, today, cfg)

        monkeypatch.setattr(notification_service_module, "evaluate_rules", evaluate)
        service = NotificationService(Settings(), ShipmentLocks(timeout=5))
        result = await service.run_check(db_session, today=TODAY)

        assert result.evaluated == 2
        assert result.created == 1
        assert result.skipped_shipment_ids == [bad.id]
        assert len(await notifications_for(db_session, good.id)) == 1

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_none_of_that_shipments_notifications(self, db_session, make_shipment):
        shipment = await make_shipment(
            sn="SN-F-HALF",
            direction=OUT,
            agreed_shipping_date=days(1),
            total_value_usd=5000,
            paid_value_usd=5000,
            docs_draft_approved=True,
        )

        class SecondInsertFails(NotificationService):
            async def _insert(self, db, shipment_id, candidate):
                if candidate.rule_id == "seller_send_original_docs":
                    raise RuntimeError("serializer failed")
                return await super()._insert(db, shipment_id, candidate)

        service = SecondInsertFails(Settings(), ShipmentLocks(timeout=5))
        result = await service.run_check(db_session, today=TODAY)

        assert result.created == 0
        assert result.skipped_shipment_ids == [shipment.id]
        assert await notifications_for(db_session, shipment.id) == []

        # The next scan picks the shipment up again.
        retry = await NotificationService(Settings(), ShipmentLocks(timeout=5)).run_check(db_session, today=TODAY)
        assert retry.created == 2

    @pytest.mark.asyncio
    async def test_lock_timeout_skips_the_shipment(self, db_session, make_shipment):
        busy = await make_shipment(sn="SN-F-BUSY", direction=OUT, agreed_shipping_date=days(1))
        free = await make_shipment(sn="SN-F-FREE", direction=OUT, agreed_shipping_date=days(1))
        locks = ShipmentLocks(timeout=0.05)
        held = locks._lock_for(busy.id)
        await held.acquire()

        try:
            result = await NotificationService(Settings(), locks).run_check(db_session, today=TODAY)
        finally:
            held.release()

        assert result.skipped_shipment_ids == [busy.id]
        assert len(await notifications_for(db_session, free.id)) == 1

    @pytest.mark.asyncio
    async def test_check_is_audited(self, db_session, make_shipment, service):
        await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)

        events, total = await AuditService.get_events(db_session, event_type="NOTIFICATION_CHECK_COMPLETED")
        assert total == 1
        assert events[0].event_data["created"] == 1


class TestInbox:

    @pytest.mark.asyncio
    async def test_list_hides_dismissed_by_default(self, db_session, make_shipment, service):
        shipment = await make_shipment(
            direction=OUT,
            agreed_shipping_date=days(1),
            total_value_usd=10,
            paid_value_usd=10,
            docs_draft_approved=True,
        )
        await service.run_check(db_session, today=TODAY)
        items, total = await service.list_notifications(db_session, shipment_id=shipment.id)
        assert total == 2

        await service.dismiss(db_session, items[0].id)
        _, total = await service.list_notifications(db_session, shipment_id=shipment.id)
        assert total == 1
        _, total = await service.list_notifications(db_session, shipment_id=shipment.id, include_dismissed=True)
        assert total == 2

    @pytest.mark.asyncio
    async def test_filter_by_severity(self, db_session, make_shipment, service):
        await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)

        items, total = await service.list_notifications(db_session, severity=NotificationSeverity.CRITICAL)
        assert total == 1
        assert items[0].rule_id == "seller_shipping_deadline"
        _, total = await service.list_notifications(db_session, severity=NotificationSeverity.INFO)
        assert total == 0

    @pytest.mark.asyncio
    async def test_mark_read_and_stats(self, db_session, make_shipment, service):
        await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)
        [notification], _ = await service.list_notifications(db_session)

        stats = await service.stats(db_session)
        assert stats == {
            "total_active": 1,
            "unread": 1,
            "by_severity": {"info": 0, "warning": 0, "critical": 1},
        }

        read = await service.mark_read(db_session, notification.id)
        assert read.is_read and read.read_at is not None
        assert (await service.stats(db_session))["unread"] == 0

    @pytest.mark.asyncio
    async def test_dismiss_is_audited(self, db_session, make_shipment, service):
        await make_shipment(direction=OUT, agreed_shipping_date=days(1))
        await service.run_check(db_session, today=TODAY)
        [notification], _ = await service.list_notifications(db_session)

        dismissed = await service.dismiss(db_session, notification.id, actor="ops.lead")

        assert dismissed.dismissed_by == "ops.lead"
        events, total = await AuditService.get_events(db_session, entity_id=notification.id)
        assert total == 1
        assert events[0].event_type == "NOTIFICATION_DISMISSED"

    @pytest.mark.asyncio
    async def test_unknown_notification(self, db_session, service):
        with pytest.raises(NotFoundError):
            await service.mark_read(db_session, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await service.dismiss(db_session, uuid.uuid4())
