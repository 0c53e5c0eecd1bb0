from .user import User
from .kit import Kit, KitAsset, ASSET_TYPES
from .entitlement import Entitlement
from .billing_event import BillingEventLog

__all__ = ["User", "Kit", "KitAsset", "ASSET_TYPES", "Entitlement", "BillingEventLog"]
