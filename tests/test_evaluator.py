"""Tests for the background breach sweep."""

from contextlib import asynccontextmanager

from helpdesk.config import BreachReason, SLAEventType, SLAInstanceStatus, TicketStatus
from helpdesk.sla.services import SLAEvaluator

from tests.conftest import utc

CREATED_AT = utc(2024, 1, 15, 12, 0)


async def test_overdue_instances_are_breached(
    clock_service, instance_repo, stats_repo, ticket_reader, general_policy, publisher
):
    overdue = ticket_reader.add_ticket(CREATED_AT)
    on_time = ticket_reader.add_ticket(utc(2024, 1, 15, 19, 0))
    await clock_service.start(overdue, CREATED_AT)
    await clock_service.start(on_time, utc(2024, 1, 15, 19, 0))

    evaluator = SLAEvaluator(clock_service, instance_repo)
    summary = await evaluator.check_breaches(utc(2024, 1, 15, 16, 0))

    assert summary["evaluated"] == 2
    assert summary["breached"] == 1
    assert (await instance_repo.get_latest(overdue)).status == SLAInstanceStatus.BREACHED
    assert (await instance_repo.get_latest(on_time)).status == SLAInstanceStatus.RUNNING
    assert stats_repo.stats[overdue].breach_reason == BreachReason.RESOLUTION_EXCEEDED
    assert publisher.types().count(SLAEventType.SLA_BREACHED) == 1


async def test_paused_time_is_not_overdue(
    clock_service, instance_repo, ticket_reader, general_policy
):
    ticket_id = ticket_reader.add_ticket(CREATED_AT)
    await clock_service.start(ticket_id, CREATED_AT)
    ticket_reader.change_status(
        ticket_id, TicketStatus.OPEN, TicketStatus.WAITING_REQUESTER, utc(2024, 1, 15, 13, 0)
    )
    await clock_service.record_status_change(
        ticket_id, TicketStatus.WAITING_REQUESTER, utc(2024, 1, 15, 13, 0)
    )

    summary = await SLAEvaluator(clock_service, instance_repo).check_breaches(
        utc(2024, 1, 17, 20, 0)
    )

    assert summary["breached"] == 0
    assert (await instance_repo.get_latest(ticket_id)).status == SLAInstanceStatus.PAUSED


async def test_sweep_is_idempotent(clock_service, instance_repo, ticket_reader, general_policy):
    ticket_id = ticket_reader.add_ticket(CREATED_AT)
    await clock_service.start(ticket_id, CREATED_AT)
    evaluator = SLAEvaluator(clock_service, instance_repo)

    first = await evaluator.check_breaches(utc(2024, 1, 16, 13, 0))
    second = await evaluator.check_breaches(utc(2024, 1, 16, 14, 0))

    assert first["breached"] == 1
    assert second["evaluated"] == 0
    assert second["breached"] == 0


async def test_no_active_instances(clock_service, instance_repo):
    summary = await SLAEvaluator(clock_service, instance_repo).check_breaches()

    assert summary["evaluated"] == 0
    assert summary["breached"] == 0


async def test_reopened_ticket_keeps_counting(
    clock_service, instance_repo, stats_repo, ticket_reader, general_policy
):
    ticket_id = ticket_reader.add_ticket(CREATED_AT)
    await clock_service.start(ticket_id, CREATED_AT)
    ticket_reader.change_status(
        ticket_id, TicketStatus.OPEN, TicketStatus.RESOLVED, utc(2024, 1, 15, 12, 30)
    )
    await clock_service.record_resolution(ticket_id, utc(2024, 1, 15, 12, 30))
    ticket_reader.change_status(
        ticket_id, TicketStatus.RESOLVED, TicketStatus.OPEN, utc(2024, 1, 15, 13, 0)
    )

    reopened = await clock_service.start(ticket_id, utc(2024, 1, 15, 13, 0))

    assert reopened.status == SLAInstanceStatus.RUNNING
    assert stats_repo.stats[ticket_id].resolved_at is None
    assert stats_repo.stats[ticket_id].business_resolution_time_ms is None

    # Wednesday 17:00 local: 30 + 480 + 540 + 480 business minutes
    snapshot = await clock_service.get_status(ticket_id, utc(2024, 1, 17, 20, 0))
    assert snapshot.elapsed_business_minutes == 1530

    summary = await SLAEvaluator(clock_service, instance_repo).check_breaches(
        utc(2024, 1, 17, 20, 0)
    )

    assert summary["breached"] == 1
    assert (await instance_repo.get_latest(ticket_id)).status == SLAInstanceStatus.BREACHED


async def test_failing_ticket_does_not_stop_the_sweep(
    clock_service, instance_repo, ticket_reader, general_policy, monkeypatch
):
    broken = ticket_reader.add_ticket(CREATED_AT)
    healthy = ticket_reader.add_ticket(CREATED_AT)
    await clock_service.start(broken, CREATED_AT)
    await clock_service.start(healthy, CREATED_AT)

    get_status = clock_service.get_status

    async def failing_get_status(ticket_id, at=None):
        if ticket_id == broken:
            raise RuntimeError("deadlock detected")
        return await get_status(ticket_id, at)

    monkeypatch.setattr(clock_service, "get_status", failing_get_status)

    scopes = []

    @asynccontextmanager
    async def isolate():
        scopes.append("enter")
        yield
        scopes.append("exit")

    summary = await SLAEvaluator(clock_service, instance_repo, isolate=isolate).check_breaches(
        utc(2024, 1, 16, 13, 0)
    )

    assert summary["evaluated"] == 2
    assert summary["breached"] == 1
    assert summary["failed"] == 1
    assert scopes.count("enter") == 2
    assert (await instance_repo.get_latest(healthy)).status == SLAInstanceStatus.BREACHED
    assert (await instance_repo.get_latest(broken)).status == SLAInstanceStatus.RUNNING
