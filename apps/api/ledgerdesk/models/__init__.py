"""Expose ORM models."""
from .activity import ActivityLog, ActivityType
from .call import Call, CallDirection, CallStatus
from .client import Client
from .task import Task, TaskPriority, TaskStatus
from .webhook_log import WebhookLog, WebhookStatus

__all__ = [
    "ActivityLog",
    "ActivityType",
    "Call",
    "CallDirection",
    "CallStatus",
    "Client",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "WebhookLog",
    "WebhookStatus",
]
