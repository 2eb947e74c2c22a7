"""
Streams module: push-based channels for session lists and readiness.
"""

from trustmesh.streams.channel import BehaviorSubject, Subject, Subscription

__all__ = [
    "BehaviorSubject",
    "Subject",
    "Subscription",
]
