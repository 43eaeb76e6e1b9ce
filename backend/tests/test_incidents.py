from datetime import timedelta

import pytest
import respx

from conftest import DOWN_500, DOWN_TIMEOUT, UP, WEBHOOK_URL, ScriptedProber
from uptimewatch.models import Alert, Check, Incident
from uptimewatch.repository import IncidentAlreadyOpenError
from uptimewatch.services.incidents import DOWN, HEALTHY, IncidentManager


async def assert_single_open_incident(fetch_all, monitor_id):
    incidents = await fetch_all(Incident, monitor_id=monitor_id)
    assert sum(1 for i in incidents if i.resolved_at is None) <= 1


async def run_sequence(scheduler, clock, fetch_all, monitor_id, outcomes_count, step=timedelta(minutes=1)):
    for index in range(outcomes_count):
        if index:
            clock.advance(seconds=step.total_seconds())
        result = await scheduler.run_check_for_monitor(monitor_id)
        assert result.status == "checked"
        await assert_single_open_incident(fetch_all, monitor_id)


@pytest.mark.asyncio
async def test_outage_then_recovery_without_endpoint(build_scheduler, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(DOWN_500, DOWN_500, DOWN_500, UP))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 4)
    await scheduler.wait_for_alerts()

    incidents = await fetch_all(Incident, monitor_id=monitor.id)
    assert len(incidents) == 1
    incident = incidents[0]
    assert incident.reason == "HTTP 500"
    assert incident.resolved_at - incident.started_at == timedelta(minutes=3)

    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert [a.alert_type for a in alerts] == ["down", "recovery"]
    assert all(a.status == "sent" and a.channel == "none" for a in alerts)
    assert all(a.incident_id == incident.id for a in alerts)
    assert "Downtime: 3 min" in alerts[1].message

    checks = await fetch_all(Check, monitor_id=monitor.id)
    assert [c.ok for c in checks] == [False, False, False, True]


@pytest.mark.asyncio
@respx.mock
async def test_outage_then_recovery_delivers_webhooks(build_scheduler, make_monitor, clock, fetch_all):
    route = respx.post(WEBHOOK_URL).respond(200)
    monitor = await make_monitor(webhook_url=WEBHOOK_URL)
    scheduler = build_scheduler(ScriptedProber(DOWN_TIMEOUT, DOWN_TIMEOUT, DOWN_TIMEOUT, UP))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 4)
    await scheduler.wait_for_alerts()

    assert route.call_count == 2
    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert sorted(a.alert_type for a in alerts) == ["down", "recovery"]
    assert all(a.status == "sent" and a.channel == "webhook" for a in alerts)

    incident = (await fetch_all(Incident, monitor_id=monitor.id))[0]
    assert incident.reason == "Request timeout"


@pytest.mark.asyncio
async def test_sustained_outage_sends_spaced_periodic_alerts(build_scheduler, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(DOWN_500))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 41)

    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    periodic = [a for a in alerts if a.alert_type == "periodic"]
    assert [a.alert_type for a in alerts].count("down") == 1
    assert len(periodic) == 2
    for earlier, later in zip(periodic, periodic[1:]):
        assert later.sent_at - earlier.sent_at >= timedelta(minutes=15)
    assert "Down for: 15 min" in periodic[0].message
    assert "Down for: 30 min" in periodic[1].message

    incident = (await fetch_all(Incident, monitor_id=monitor.id))[0]
    assert incident.resolved_at is None
    assert incident.last_alert_sent_at == periodic[-1].sent_at


@pytest.mark.asyncio
async def test_no_periodic_alert_before_threshold(build_scheduler, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(DOWN_500))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 15)

    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert [a.alert_type for a in alerts] == ["down"]


@pytest.mark.asyncio
async def test_new_outage_after_recovery_opens_new_incident(build_scheduler, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(DOWN_500, UP, UP, DOWN_500, DOWN_500))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 5)

    incidents = await fetch_all(Incident, monitor_id=monitor.id)
    assert len(incidents) == 2
    assert incidents[0].resolved_at is not None
    assert incidents[1].resolved_at is None

    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert [a.alert_type for a in alerts] == ["down", "recovery", "down"]


@pytest.mark.asyncio
async def test_healthy_checks_produce_no_incident_or_alert(build_scheduler, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(UP))

    await run_sequence(scheduler, clock, fetch_all, monitor.id, 3)

    assert await fetch_all(Incident, monitor_id=monitor.id) == []
    assert await fetch_all(Alert, monitor_id=monitor.id) == []


@pytest.mark.asyncio
@respx.mock
async def test_failed_delivery_keeps_incident_open(build_scheduler, make_monitor, fetch_all, sleeps):
    respx.post(WEBHOOK_URL).respond(500)
    monitor = await make_monitor(webhook_url=WEBHOOK_URL)
    scheduler = build_scheduler(ScriptedProber(DOWN_500))

    result = await scheduler.run_check_for_monitor(monitor.id)
    await scheduler.wait_for_alerts()

    assert result.status == "checked"
    incidents = await fetch_all(Incident, monitor_id=monitor.id)
    assert len(incidents) == 1 and incidents[0].resolved_at is None
    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert [(a.alert_type, a.status) for a in alerts] == [("down", "failed")]
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
@respx.mock
async def test_slack_channel_and_webhook_each_get_a_dispatch(build_scheduler, make_monitor, fetch_all):
    slack_url = "https://hooks.slack.test/services/T/B/X"
    respx.post(WEBHOOK_URL).respond(200)
    slack_route = respx.post(slack_url).respond(200)
    monitor = await make_monitor(
        webhook_url=WEBHOOK_URL,
        alert_channel_enabled=True,
        alert_channel_url=slack_url,
    )
    scheduler = build_scheduler(ScriptedProber(DOWN_500))

    await scheduler.run_check_for_monitor(monitor.id)
    await scheduler.wait_for_alerts()

    assert slack_route.called
    alerts = await fetch_all(Alert, monitor_id=monitor.id)
    assert sorted(a.channel for a in alerts) == ["slack", "webhook"]


@pytest.mark.asyncio
async def test_paused_monitor_run_has_no_side_effects(build_scheduler, make_monitor, fetch_all, repository):
    monitor = await make_monitor(is_paused=True)
    prober = ScriptedProber(DOWN_500)
    scheduler = build_scheduler(prober)

    result = await scheduler.run_check_for_monitor(monitor.id)

    assert result.status == "skipped"
    assert result.check is None
    assert prober.calls == []
    assert await fetch_all(Check, monitor_id=monitor.id) == []
    assert await fetch_all(Incident, monitor_id=monitor.id) == []
    assert await fetch_all(Alert, monitor_id=monitor.id) == []
    assert (await repository.get_target(monitor.id)).last_checked is None


@pytest.mark.asyncio
async def test_missing_monitor_is_skipped(build_scheduler):
    scheduler = build_scheduler(ScriptedProber(UP))

    result = await scheduler.run_check_for_monitor(9999)

    assert result.status == "skipped"


@pytest.mark.asyncio
async def test_check_updates_last_checked(build_scheduler, make_monitor, clock, repository):
    monitor = await make_monitor()
    scheduler = build_scheduler(ScriptedProber(UP))

    result = await scheduler.run_check_for_monitor(monitor.id)

    assert result.check.created_at == clock.now
    assert (await repository.get_target(monitor.id)).last_checked == clock.now


@pytest.mark.asyncio
async def test_second_open_incident_is_rejected(repository, make_monitor, clock):
    monitor = await make_monitor()
    await repository.create_incident(monitor.id, "HTTP 500", clock.now)

    with pytest.raises(IncidentAlreadyOpenError):
        await repository.create_incident(monitor.id, "HTTP 502", clock.now + timedelta(seconds=5))


@pytest.mark.asyncio
async def test_lost_race_on_open_incident_does_not_alert(repository, dispatcher, make_monitor, clock, fetch_all):
    monitor = await make_monitor()
    manager = IncidentManager(repository, dispatcher)
    check = await repository.record_check(monitor.id, False, 500, 10, None, clock.now)

    first = await manager.process(monitor, check)
    transition = await manager._open(monitor, "HTTP 500", clock.now)

    assert first.previous == HEALTHY and first.current == DOWN
    assert transition.current == DOWN
    assert transition.notification is None
    assert len(await fetch_all(Incident, monitor_id=monitor.id)) == 1
    assert [a.alert_type for a in await fetch_all(Alert, monitor_id=monitor.id)] == ["down"]
