from __future__ import annotations

from .gate import authorize, can_access, has_entitlement, require_admin


class AccessGate:
    can_access = staticmethod(can_access)
    has_entitlement = staticmethod(has_entitlement)
    authorize = staticmethod(authorize)
    require_admin = staticmethod(require_admin)


__all__ = ["AccessGate"]
