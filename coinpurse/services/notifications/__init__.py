"""
Notification Services Package

Delivers budget alerts. SMTP when configured, the log otherwise.
"""

from coinpurse.services.notifications.mailer import (
    LogOnlyNotifier,
    NotificationError,
    NotifierInterface,
    SmtpMailer,
    create_notifier,
)

__all__ = [
    "LogOnlyNotifier",
    "NotificationError",
    "NotifierInterface",
    "SmtpMailer",
    "create_notifier",
]
