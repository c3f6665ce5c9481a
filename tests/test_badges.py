from datetime import datetime, timedelta

import pytest

from pedibus.src import badges
from pedibus.src.enums import BadgeCriteria, ChildStationType
from pedibus.src.schemas import Stat
from pedibus.src.db import Badge, ClientBadge, ChildStat

from conftest import (
    accompany,
    checkIn,
    makeActivity,
    makeBadge,
    makeChild,
    makeParent,
)


@pytest.mark.parametrize(
    "criteria, valueNeeded, stat, expected",
    [
        (BadgeCriteria.DISTANCE, 2, Stat(id=1, distance=1999), False),
        (BadgeCriteria.DISTANCE, 2, Stat(id=1, distance=2000), True),
        (BadgeCriteria.STREAK, 3, Stat(id=1, streak=3), True),
        (BadgeCriteria.CALORIES, 100, Stat(id=1, calories=99), False),
        (BadgeCriteria.WEATHER, 2, Stat(id=1, weather=2), True),
        (BadgeCriteria.POINTS, 50, Stat(id=1, points=50), True),
        (BadgeCriteria.PARTICIPATION, 1, Stat(id=1), False),
        (BadgeCriteria.SPECIAL, 0, Stat(id=1, points=999), False),
        (BadgeCriteria.LEADERBOARD, 1, Stat(id=1, points=999), False),
    ],
)
def test_has_enough_for_badge(criteria, valueNeeded, stat, expected):
    badge = Badge(name="b", criteria=criteria, value_needed=valueNeeded)
    assert badges.hasEnoughForBadge(stat, badge) is expected


def test_award_engine_is_idempotent(session, network):
    kim = makeChild(session, "Kim", network.s3)
    parent = makeParent(session, "Paula", [kim])
    catalogue = [
        makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1),
        makeBadge(session, "Collector", BadgeCriteria.POINTS, 100),
        makeBadge(session, "Explorer", BadgeCriteria.DISTANCE, 1),
    ]
    childStats = [Stat(id=kim.id, participations=1, points=19, distance=900)]
    parentStats = [Stat(id=parent.id, participations=1, points=120, distance=900)]

    first = badges.evaluateAndAwardBadges(session, catalogue, childStats, parentStats)
    snapshot = {
        (cb.badge_id, cb.child_id, cb.parent_id) for cb in session.query(ClientBadge)
    }
    second = badges.evaluateAndAwardBadges(session, catalogue, childStats, parentStats)

    assert {(cb.badge_id, cb.child_id, cb.parent_id) for cb in first} == {
        (catalogue[0].id, kim.id, None),
        (catalogue[0].id, None, parent.id),
        (catalogue[1].id, None, parent.id),
    }
    assert second == []
    assert {
        (cb.badge_id, cb.child_id, cb.parent_id) for cb in session.query(ClientBadge)
    } == snapshot
    assert session.query(ClientBadge).count() == 3


def test_duplicate_insert_is_ignored(session, network, monkeypatch):
    kim = makeChild(session, "Kim", network.s3)
    badge = makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1)
    session.add(
        ClientBadge(badge_id=badge.id, child_id=kim.id, assigned_at=datetime(2024, 5, 1))
    )
    session.flush()

    # Simulate a concurrent run that passed the check before the insert
    monkeypatch.setattr(badges, "_hasBadge", lambda *args, **kwargs: False)
    assert badges._award(session, badge.id, childId=kim.id) is None
    assert session.query(ClientBadge).count() == 1


def test_notify_failures_do_not_stop_awards(session, network):
    kim = makeChild(session, "Kim", network.s3)
    catalogue = [
        makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1),
        makeBadge(session, "Collector", BadgeCriteria.POINTS, 10),
    ]
    notified = []

    def notify(clientBadge):
        notified.append(clientBadge.badge_id)
        raise RuntimeError("push service down")

    awarded = badges.evaluateAndAwardBadges(
        session, catalogue, [Stat(id=kim.id, participations=1, points=19)], [], notify
    )
    assert len(awarded) == 2
    assert notified == [catalogue[0].id, catalogue[1].id]


def test_award_badges_after_activity(session, network, morning):
    activity = makeActivity(session, network.blue, morning, finished=True)
    kim = makeChild(session, "Kim", network.s3)
    parent = makeParent(session, "Paula", [kim])
    checkIn(session, activity, kim, network.s1)
    checkIn(session, activity, kim, network.s3, ChildStationType.OUT)
    accompany(session, activity, parent)
    firstSteps = makeBadge(session, "First Steps", BadgeCriteria.PARTICIPATION, 1)
    makeBadge(session, "Marathoner", BadgeCriteria.DISTANCE, 42)
    session.commit()

    notified = []
    awarded = badges.awardBadgesAfterActivity(session, activity.id, notified.append)
    assert {(cb.badge_id, cb.child_id, cb.parent_id) for cb in awarded} == {
        (firstSteps.id, kim.id, None),
        (firstSteps.id, None, parent.id),
    }
    assert notified == awarded

    # Processed sessions award nothing new
    assert badges.awardBadgesAfterActivity(session, activity.id) == []
    assert session.query(ChildStat).count() == 1
    assert session.query(ClientBadge).count() == 2


def test_award_badges_after_activity_failure_is_rolled_back(session, network, morning):
    running = makeActivity(session, network.blue, morning, started=True)
    session.commit()

    assert badges.awardBadgesAfterActivity(session, running.id) == []
    assert session.query(ChildStat).count() == 0


def test_award_leaderboard_badges(session, network, morning):
    ana = makeChild(session, "Ana", network.s3)
    rui = makeChild(session, "Rui", network.s3)
    first = makeActivity(session, network.blue, morning, finished=True)
    for child, points in ((ana, 19), (rui, 30)):
        session.add(
            ChildStat(
                child_id=child.id,
                activity_session_id=first.id,
                points_earned=points,
                activity_date=morning,
            )
        )
    star = makeBadge(session, "Monthly Star", BadgeCriteria.LEADERBOARD, 1)
    legend = makeBadge(session, "Monthly Legend", BadgeCriteria.LEADERBOARD, 2)
    session.commit()

    start = datetime(2024, 5, 1)
    end = datetime(2024, 6, 1)
    awarded = badges.awardLeaderboardBadges(session, start, end)
    assert [(cb.badge_id, cb.child_id) for cb in awarded] == [(star.id, rui.id)]

    # The next win goes to the next badge
    awarded = badges.awardLeaderboardBadges(session, start, end)
    assert [(cb.badge_id, cb.child_id) for cb in awarded] == [(legend.id, rui.id)]
    assert badges.awardLeaderboardBadges(session, start, end) == []
    assert badges.awardLeaderboardBadges(
        session, end, end + timedelta(days=30)
    ) == []
