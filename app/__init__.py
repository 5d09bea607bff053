"""
MeetGraph - FastAPI Application.

Provides REST API endpoints for events, attendance, meetings, profiles
and natural-language contact queries.
"""

from app.config import Settings, get_settings

__all__ = [
    "get_settings",
    "Settings",
]
