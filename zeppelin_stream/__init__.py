"""Event fanout broker and HTTP streaming transport for topology updates."""

from .broker import EventBroker, Subscription, SubscriptionClosed
from .models import DiffResponse, SnapshotResponse, encode_payload

__all__ = [
    "DiffResponse",
    "EventBroker",
    "SnapshotResponse",
    "Subscription",
    "SubscriptionClosed",
    "encode_payload",
]
