"""Transports delivering serialized batches to a downstream input port."""

from .types import Direction, SiteToSiteClient, Transaction, TransactionState
from .http import HttpSiteToSiteClient, HttpTransaction
from .memory import Delivery, MemorySiteToSiteClient, MemoryTransaction

__all__ = [
    "Direction",
    "SiteToSiteClient",
    "Transaction",
    "TransactionState",
    "HttpSiteToSiteClient",
    "HttpTransaction",
    "Delivery",
    "MemorySiteToSiteClient",
    "MemoryTransaction",
]
