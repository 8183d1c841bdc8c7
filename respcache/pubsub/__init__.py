"""Publish/subscribe module for RESP-Cache."""

from .registry import SubscriptionRegistry

__all__ = ["SubscriptionRegistry"]
