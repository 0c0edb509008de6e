from .channel import Notification, NotificationChannel

__all__ = ["Notification", "NotificationChannel"]
