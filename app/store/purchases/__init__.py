from app.store.purchases.service import PurchaseService

__all__ = ["PurchaseService"]
