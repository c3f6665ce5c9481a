from fastapi import FastAPI
from pedibus.api import (
    activity_session,
    route,
    leaderboard,
    badge,
)
from pedibus.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_instructor = FastAPI(title="Instructor APP")
app_parent = FastAPI(title="Parent APP")
app_public = FastAPI(title="Public APP")

# Tag each app with its AppID
app_instructor.state.id = AppID.INSTRUCTOR
app_parent.state.id = AppID.PARENT
app_public.state.id = AppID.PUBLIC


# ------------------------------------------------------
# Instructor routers
# ------------------------------------------------------
app_instructor.include_router(activity_session.route_instructor)
app_instructor.include_router(route.route_instructor)


# ------------------------------------------------------
# Parent routers
# ------------------------------------------------------
app_parent.include_router(activity_session.route_parent)
app_parent.include_router(badge.route_parent)


# ------------------------------------------------------
# Public routers
# ------------------------------------------------------
app_public.include_router(activity_session.route_public)
app_public.include_router(route.route_public)
app_public.include_router(leaderboard.route_public)
app_public.include_router(badge.route_public)
