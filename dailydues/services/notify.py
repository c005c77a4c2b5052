# dailydues/services/notify.py
import logging

from flask import current_app

logger = logging.getLogger(__name__)


def get_notifier():
    return current_app.extensions.get("dailydues.notifier")


def notify_safely(notifier, method: str, *args) -> bool:
    """
    Call a notifier method after the state change has been committed.
    Notification problems are logged and never reach the caller.
    """
    if notifier is None:
        return False
    try:
        return bool(getattr(notifier, method)(*args))
    except Exception:
        logger.exception("[notify] %s failed", method)
        return False
