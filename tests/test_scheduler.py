from datetime import datetime, timedelta

from pedibus.src import scheduler
from pedibus.src.constants import TMZ_PRIMARY
from pedibus.src.enums import AppID, BadgeCriteria, ChildStationType
from pedibus.src.db import ChildStat, ClientBadge

from conftest import checkIn, makeActivity, makeBadge, makeChild


def test_run_once_processes_finished_sessions(session, network, events):
    now = datetime(2024, 5, 10, 12, 0, tzinfo=TMZ_PRIMARY)
    scheduledAt = datetime(2024, 5, 9, 8, 0)
    activity = makeActivity(session, network.blue, scheduledAt, started=True)
    kim = makeChild(session, "Kim", network.s3)
    checkIn(session, activity, kim, network.s1)
    checkIn(session, activity, kim, network.s3, ChildStationType.OUT)
    badge = makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1)
    upcoming = makeActivity(session, network.blue, datetime(2024, 5, 10, 18, 0))
    session.commit()

    scheduler.runOnce(session, now)

    assert upcoming.is_closed is True
    assert activity.finished_at is not None
    assert session.query(ChildStat).count() == 1
    awarded = session.query(ClientBadge).all()
    assert [(cb.badge_id, cb.child_id) for cb in awarded] == [(badge.id, kim.id)]

    jobs = [event["_job"] for event in events]
    assert jobs == [
        "close_registrations",
        "finish_overdue_sessions",
        "process_activity_session",
    ]
    assert all(event["_app_id"] == AppID.SCHEDULER for event in events)

    # Nothing left to do on the next pass
    events.clear()
    scheduler.runOnce(session, now + timedelta(hours=1))
    assert session.query(ChildStat).count() == 1
    assert "process_activity_session" not in [event["_job"] for event in events]


def test_failing_job_does_not_stop_the_pass(session, monkeypatch):
    ran = []

    def broken(session, now):
        raise RuntimeError("boom")

    def healthy(session, now):
        ran.append(now)

    monkeypatch.setattr(scheduler, "JOBS", (broken, healthy))
    now = datetime(2024, 5, 10, 12, 0, tzinfo=TMZ_PRIMARY)
    scheduler.runOnce(session, now)
    assert ran == [now]


def test_monthly_leaderboard_awarded_once_on_last_evening(session, network, events):
    kim = makeChild(session, "Kim", network.s3)
    activity = makeActivity(session, network.blue, datetime(2024, 5, 20, 8, 0), finished=True)
    session.add(
        ChildStat(
            child_id=kim.id,
            activity_session_id=activity.id,
            points_earned=19,
            activity_date=activity.scheduled_at,
        )
    )
    badge = makeBadge(session, "Monthly Star", BadgeCriteria.LEADERBOARD, 1)
    session.commit()

    # 22:30 UTC is 23:30 in Lisbon during summer time
    early = datetime(2024, 5, 31, 20, 0, tzinfo=TMZ_PRIMARY)
    scheduler.awardMonthlyLeaderboard(session, early)
    assert session.query(ClientBadge).count() == 0

    lastHour = datetime(2024, 5, 31, 22, 30, tzinfo=TMZ_PRIMARY)
    scheduler.awardMonthlyLeaderboard(session, lastHour)
    scheduler.awardMonthlyLeaderboard(session, lastHour + timedelta(minutes=20))

    awarded = session.query(ClientBadge).all()
    assert [(cb.badge_id, cb.child_id) for cb in awarded] == [(badge.id, kim.id)]
    assert [event["_job"] for event in events] == ["award_leaderboard"]
    assert events[0]["period"] == "2024-05"


def test_monthly_leaderboard_retried_after_failure(session, network, monkeypatch):
    kim = makeChild(session, "Kim", network.s3)
    activity = makeActivity(session, network.blue, datetime(2024, 5, 20, 8, 0), finished=True)
    session.add(
        ChildStat(
            child_id=kim.id,
            activity_session_id=activity.id,
            points_earned=19,
            activity_date=activity.scheduled_at,
        )
    )
    badge = makeBadge(session, "Monthly Star", BadgeCriteria.LEADERBOARD, 1)
    session.commit()

    realAward = scheduler.awardLeaderboardBadges
    calls = []

    def flakyAward(session, start, end):
        calls.append(start)
        if len(calls) == 1:
            raise RuntimeError("database unavailable")
        return realAward(session, start, end)

    monkeypatch.setattr(scheduler, "awardLeaderboardBadges", flakyAward)
    monkeypatch.setattr(scheduler, "JOBS", (scheduler.awardMonthlyLeaderboard,))

    lastHour = datetime(2024, 5, 31, 22, 30, tzinfo=TMZ_PRIMARY)
    scheduler.runOnce(session, lastHour)
    assert session.query(ClientBadge).count() == 0

    scheduler.runOnce(session, lastHour + timedelta(minutes=10))
    awarded = session.query(ClientBadge).all()
    assert [(cb.badge_id, cb.child_id) for cb in awarded] == [(badge.id, kim.id)]
    assert len(calls) == 2
