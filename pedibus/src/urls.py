"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the activity progression and achievement resources.

These URLs are relative paths and are prefixed by the mount point of the
sub-application (instructor, parent or public) serving them.
"""

# -------------------------------
# Activity session
# -------------------------------
URL_ACTIVITY_SESSION = "/activity-session"
URL_ACTIVITY_SESSION_REGISTRATION = "/activity-session/registration"
URL_ACTIVITY_SESSION_START = "/activity-session/start"
URL_ACTIVITY_SESSION_FINISH = "/activity-session/finish"
URL_ACTIVITY_SESSION_PROGRESS = "/activity-session/progress"
URL_ACTIVITY_SESSION_ARRIVAL = "/activity-session/arrival"
URL_ACTIVITY_SESSION_DEPARTURE = "/activity-session/departure"
URL_CHILD_STATION = "/activity-session/child-station"
URL_PARENT_STATION = "/activity-session/parent-station"
URL_ROUTE_TRANSFER = "/activity-session/transfer"

# -------------------------------
# Route
# -------------------------------
URL_LINKED_ACTIVITIES = "/route/linked-activities"

# -------------------------------
# Achievements
# -------------------------------
URL_BADGE = "/badge"
URL_BADGE_AWARDED = "/badge/awarded"
URL_LEADERBOARD = "/leaderboard"
