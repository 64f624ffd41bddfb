"""Connection module."""

from .manager import (
    ConnectionManager,
    IConnectionManager,
    create_paho_client,
    generate_client_id,
)
from .tls import build_tls_context, load_trust_store
from .tracker import DeliveryTracker, IDeliveryTracker

__all__ = [
    "ConnectionManager",
    "IConnectionManager",
    "create_paho_client",
    "generate_client_id",
    "build_tls_context",
    "load_trust_store",
    "DeliveryTracker",
    "IDeliveryTracker",
]
