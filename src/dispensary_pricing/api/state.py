"""
Shared API state: one pricing service and the open register sessions.
"""
import threading
from typing import Optional

from ..services.pricing_service import PricingService
from ..surfaces.pos import PosRegister

_lock = threading.Lock()
_service: Optional[PricingService] = None
_registers: dict[str, PosRegister] = {}


def get_service() -> PricingService:
    """Lazily build the process-wide pricing service."""
    global _service
    with _lock:
        if _service is None:
            _service = PricingService()
        return _service


def get_registers() -> dict[str, PosRegister]:
    return _registers


def reset_state(service: Optional[PricingService] = None):
    """Drop sessions and swap the service (tests, hot reload)."""
    global _service
    with _lock:
        for register in _registers.values():
            register.close()
        _registers.clear()
        _service = service
