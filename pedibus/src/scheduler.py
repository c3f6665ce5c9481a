import time
import logging
from calendar import monthrange
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from pedibus.src import lifecycle
from pedibus.src.badges import awardBadgesAfterActivity, awardLeaderboardBadges
from pedibus.src.constants import SCHEDULER_INTERVAL, TMZ_PRIMARY, TMZ_SECONDARY
from pedibus.src.db import ActivitySession, Badge, sessionMaker
from pedibus.src.enums import RankingTimeframe
from pedibus.src.leaderboard import getLeaderboardTimeframes
from pedibus.src.loggers import logJobEvent
from pedibus.src.redis import clearMark, markOnce, mutex


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Scheduler")

LEADERBOARD_AWARD_HOUR = 23


def closeRegistrations(session: Session, now: datetime) -> None:
    with mutex(ActivitySession.__tablename__):
        closed = lifecycle.closeRegistrations(session, now)
        session.commit()
    logger.info(f" Closed registrations of {closed} activity sessions")
    logJobEvent("close_registrations", {"closed": closed})


def finishOverdueSessions(session: Session, now: datetime) -> None:
    with mutex(ActivitySession.__tablename__):
        finished = lifecycle.finishOverdueSessions(session, now)
        session.commit()
    logger.info(f" Finished {len(finished)} overdue activity sessions")
    logJobEvent("finish_overdue_sessions", {"finished": [a.id for a in finished]})


def processFinishedSessions(session: Session, now: datetime) -> None:
    """Record statistics and award badges of finished, unprocessed sessions."""
    pending = (
        session.query(ActivitySession.id)
        .filter(ActivitySession.finished_at.is_not(None))
        .filter(ActivitySession.stats_processed_on.is_(None))
        .order_by(ActivitySession.finished_at.asc())
        .all()
    )
    for (activitySessionId,) in pending:
        with mutex(ActivitySession.__tablename__, activitySessionId):
            awarded = awardBadgesAfterActivity(session, activitySessionId)
        logJobEvent(
            "process_activity_session",
            {
                "activity_session_id": activitySessionId,
                "badges_awarded": len(awarded),
            },
        )


def awardMonthlyLeaderboard(session: Session, now: datetime) -> None:
    """Award the leaderboard badges of the month during its last hour."""
    local = now.astimezone(TMZ_SECONDARY)
    lastDay = monthrange(local.year, local.month)[1]
    if local.day != lastDay or local.hour < LEADERBOARD_AWARD_HOUR:
        return
    period = f"{local.year}-{local.month:02d}"
    if not markOnce(f"leaderboard:{period}", 60 * 60 * 24):
        return

    timeframe = getLeaderboardTimeframes(RankingTimeframe.MONTHLY, 0, local)[0]
    try:
        with mutex(Badge.__tablename__):
            awarded = awardLeaderboardBadges(session, timeframe.start, timeframe.end)
    except Exception:
        # Let a later pass in the same hour retry the award
        clearMark(f"leaderboard:{period}")
        raise
    logger.info(f" Awarded {len(awarded)} leaderboard badges for {timeframe.label}")
    logJobEvent(
        "award_leaderboard",
        {"period": period, "awarded": len(awarded)},
    )


JOBS = (
    closeRegistrations,
    finishOverdueSessions,
    processFinishedSessions,
    awardMonthlyLeaderboard,
)


def runOnce(session: Session, now: Optional[datetime] = None) -> None:
    now = now or datetime.now(TMZ_PRIMARY)
    for job in JOBS:
        try:
            job(session, now)
        except Exception:
            session.rollback()
            logger.exception(f"Scheduler job {job.__name__} failed")


def runScheduler(session: Session):
    while True:
        runOnce(session)
        time.sleep(SCHEDULER_INTERVAL)


def main():
    try:
        with sessionMaker() as session:
            runScheduler(session)
    except Exception:
        logger.exception("scheduler.py failed")


if __name__ == "__main__":
    main()
