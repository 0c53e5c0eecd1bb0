from .headers import init_security
from .cors import init_cors
from .entitlements import require_kit_entitlement

__all__ = ["init_security", "init_cors", "require_kit_entitlement"]
