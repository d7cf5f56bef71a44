"""
Service layer - collaborators used by the route handlers
"""
from flask import current_app

from services.notification_service import NotificationService

EXTENSION_KEY = "notifications"


def get_notifier():
    """NotificationService owned by the running app."""
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["NotificationService", "get_notifier", "EXTENSION_KEY"]
