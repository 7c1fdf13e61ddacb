"""Notification domain exports."""

from .models import Notification, NotificationRefs, NotificationType
from .service import NotificationFanout

__all__ = [
	"Notification",
	"NotificationFanout",
	"NotificationRefs",
	"NotificationType",
]
