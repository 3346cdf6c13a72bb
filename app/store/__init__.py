from app.store.access import AccessGate
from app.store.delivery import DeliveryLocatorIssuer
from app.store.purchases import PurchaseService

__all__ = [
    "AccessGate",
    "DeliveryLocatorIssuer",
    "PurchaseService",
]
