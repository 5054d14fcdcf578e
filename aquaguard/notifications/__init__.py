"""Notification dispatch: recipient resolution and guarded delivery."""

from aquaguard.notifications.config import NotificationConfig
from aquaguard.notifications.dispatcher import NotificationDispatcher
from aquaguard.notifications.preferences import PreferenceRepository, in_quiet_hours, is_eligible
from aquaguard.notifications.schemas import DeliveryResult, NotificationPreference
from aquaguard.notifications.senders import HttpEmailSender, OutboundSender, create_sender

__all__ = [
    "DeliveryResult",
    "HttpEmailSender",
    "NotificationConfig",
    "NotificationDispatcher",
    "NotificationPreference",
    "OutboundSender",
    "PreferenceRepository",
    "create_sender",
    "in_quiet_hours",
    "is_eligible",
]
