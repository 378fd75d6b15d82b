"""Customer notification adapters."""
from .email_notifier import CeleryEmailNotifier, LoggingNotifier

__all__ = ["CeleryEmailNotifier", "LoggingNotifier"]
