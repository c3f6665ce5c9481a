"""
Badge award engine.

Compares aggregated participant statistics with the badge catalogue and
records the newly earned badges. Awards are unique per (badge, child) and
per (badge, parent): the engine checks before inserting and the store's
unique indexes catch concurrent runs that pass the check together.
"""

from datetime import datetime
from logging import getLogger
from typing import Callable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from pedibus.src import exceptions, schemas
from pedibus.src.constants import TMZ_PRIMARY
from pedibus.src.enums import BadgeCriteria, RankingType
from pedibus.src.db import Badge, ClientBadge
from pedibus.src.leaderboard import getStats
from pedibus.src.statistics import aggregateSessionStats, recordSessionStats

logger = getLogger("Badges")

Notifier = Callable[[ClientBadge], None]


def hasEnoughForBadge(stat: schemas.Stat, badge: Badge) -> bool:
    """
    Check whether a participant's statistics reach the threshold of a badge.

    Distance thresholds are expressed in kilometres, statistics in meters.
    Special and leaderboard badges are never earned here.
    """
    valueNeeded = badge.value_needed or 0
    criteria = badge.criteria
    if criteria == BadgeCriteria.STREAK:
        return stat.streak >= valueNeeded
    if criteria == BadgeCriteria.DISTANCE:
        return stat.distance >= valueNeeded * 1000
    if criteria == BadgeCriteria.CALORIES:
        return stat.calories >= valueNeeded
    if criteria == BadgeCriteria.WEATHER:
        return stat.weather >= valueNeeded
    if criteria == BadgeCriteria.POINTS:
        return stat.points >= valueNeeded
    if criteria == BadgeCriteria.PARTICIPATION:
        return stat.participations >= valueNeeded
    return False


def _hasBadge(
    session: Session,
    badgeId: int,
    childId: Optional[int] = None,
    parentId: Optional[int] = None,
) -> bool:
    query = session.query(ClientBadge.id).filter(ClientBadge.badge_id == badgeId)
    if childId is not None:
        query = query.filter(ClientBadge.child_id == childId)
    else:
        query = query.filter(ClientBadge.child_id.is_(None))
    if parentId is not None:
        query = query.filter(ClientBadge.parent_id == parentId)
    else:
        query = query.filter(ClientBadge.parent_id.is_(None))
    return query.first() is not None


def _award(
    session: Session,
    badgeId: int,
    childId: Optional[int] = None,
    parentId: Optional[int] = None,
) -> Optional[ClientBadge]:
    """Insert an award unless it already exists. Returns the new award, if any."""
    if _hasBadge(session, badgeId, childId, parentId):
        return None
    clientBadge = ClientBadge(
        badge_id=badgeId,
        child_id=childId,
        parent_id=parentId,
        assigned_at=datetime.now(TMZ_PRIMARY),
    )
    try:
        with session.begin_nested():
            session.add(clientBadge)
    except IntegrityError:
        logger.info(
            f"Badge {badgeId} already awarded to child {childId} / parent {parentId}"
        )
        return None
    return clientBadge


def _notify(notify: Optional[Notifier], awarded: List[ClientBadge]) -> None:
    if notify is None:
        return
    for clientBadge in awarded:
        try:
            notify(clientBadge)
        except Exception:
            logger.exception(f"Notification of award {clientBadge.id} failed")


def evaluateAndAwardBadges(
    session: Session,
    badges: List[Badge],
    childStats: List[schemas.Stat],
    parentStats: List[schemas.Stat],
    notify: Optional[Notifier] = None,
) -> List[ClientBadge]:
    """
    Award every badge whose threshold is reached and not yet held.

    Running it again over the same statistics awards nothing new.

    Args:
        session (Session): Active SQLAlchemy session. Not committed here.
        badges (List[Badge]): Badge catalogue to evaluate.
        childStats (List[schemas.Stat]): Running totals of children.
        parentStats (List[schemas.Stat]): Running totals of parents.
        notify (Optional[Notifier]): Called once per new award.

    Returns:
        List[ClientBadge]: The awards created by this run.
    """
    awarded = []
    for stat in childStats:
        for badge in badges:
            if hasEnoughForBadge(stat, badge):
                clientBadge = _award(session, badge.id, childId=stat.id)
                if clientBadge is not None:
                    awarded.append(clientBadge)
    for stat in parentStats:
        for badge in badges:
            if hasEnoughForBadge(stat, badge):
                clientBadge = _award(session, badge.id, parentId=stat.id)
                if clientBadge is not None:
                    awarded.append(clientBadge)
    _notify(notify, awarded)
    return awarded


def awardBadgesAfterActivity(
    session: Session, activitySessionId: int, notify: Optional[Notifier] = None
) -> List[ClientBadge]:
    """
    Process a finished activity session: record its statistics and award badges.

    The whole run is committed at once. A failure rolls the run back and is
    logged without being raised, so it never blocks the caller finishing
    the session; the run can be triggered again later.

    Returns:
        List[ClientBadge]: The awards created, empty on failure.
    """
    try:
        recordSessionStats(session, activitySessionId)
        childStats, parentStats = aggregateSessionStats(session, activitySessionId)
        badges = session.query(Badge).order_by(Badge.id.asc()).all()
        awarded = evaluateAndAwardBadges(session, badges, childStats, parentStats)
        session.commit()
    except Exception as e:
        session.rollback()
        exceptions.logException(e)
        return []

    logger.info(
        f"Awarded {len(awarded)} badges after activity session {activitySessionId}"
    )
    _notify(notify, awarded)
    return awarded


def awardLeaderboardBadges(
    session: Session,
    start: Optional[datetime],
    end: Optional[datetime],
    notify: Optional[Notifier] = None,
) -> List[ClientBadge]:
    """
    Award the leaderboard badges of a period.

    The child and the parent with the most points in `[start, end)` each
    receive the leaderboard badge with the lowest threshold they do not
    hold yet. Ties go to the first ranked participant.

    Returns:
        List[ClientBadge]: The awards created, at most one per winner.
    """
    leaderboardBadges = (
        session.query(Badge)
        .filter(Badge.criteria == BadgeCriteria.LEADERBOARD)
        .all()
    )
    leaderboardBadges.sort(key=lambda badge: (badge.value_needed or 0, badge.id))

    awarded = []
    winners = (
        (RankingType.CHILDREN, "childId"),
        (RankingType.PARENTS, "parentId"),
    )
    for rankingType, clientKey in winners:
        entries = getStats(session, rankingType, start, end)
        if not entries:
            continue
        winner = max(entries, key=lambda entry: entry.points)
        for badge in leaderboardBadges:
            clientBadge = _award(session, badge.id, **{clientKey: winner.id})
            if clientBadge is not None:
                logger.info(
                    f"Awarded leaderboard badge {badge.id} to "
                    f"{RankingType(rankingType).name.lower()} {winner.id}"
                )
                awarded.append(clientBadge)
                break

    session.commit()
    _notify(notify, awarded)
    return awarded
