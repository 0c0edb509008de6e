from .events import COMPLETION_TYPES, SyncEvent, SyncEventChannel, SyncEventType

__all__ = ["COMPLETION_TYPES", "SyncEvent", "SyncEventChannel", "SyncEventType"]
