"""
POS API - FastAPI router for register cart sessions.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..services.pricing_service import PricingService
from ..surfaces.pos import PosRegister
from .state import get_registers, get_service

router = APIRouter(prefix="/api/pos", tags=["pos"])


# Pydantic models for API
class SessionCreate(BaseModel):
    """Request model for opening a register session."""
    vendor_id: str
    tax_rate: Optional[float] = Field(default=None, ge=0)


class ItemAdd(BaseModel):
    """Request model for adding a product to the cart."""
    product_id: str
    quantity: float = 1


class QuantityUpdate(BaseModel):
    quantity: float


class ManualDiscount(BaseModel):
    """Request model for a staff line discount."""
    discount_type: str  # "percentage" | "amount"
    value: float


class CheckoutRequest(BaseModel):
    loyalty_points: float = Field(default=0, ge=0)
    point_value: float = Field(default=0.0, ge=0)


def _register(session_id: str) -> PosRegister:
    register = get_registers().get(session_id)
    if register is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return register


# Endpoints

@router.post("/sessions")
async def open_session(req: SessionCreate, service: PricingService = Depends(get_service)):
    """Open a register cart subscribed to the vendor's promotion updates."""
    register = PosRegister(
        vendor_id=req.vendor_id,
        channel=service.channel,
        promotions=service.promotions_for_vendor(req.vendor_id),
        tax_rate=service.settings.tax_rate if req.tax_rate is None else req.tax_rate,
        clock=service.clock,
    )
    get_registers()[register.session_id] = register
    return register.cart_view()


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _register(session_id).cart_view()


@router.post("/sessions/{session_id}/items")
async def add_item(session_id: str, req: ItemAdd, service: PricingService = Depends(get_service)):
    register = _register(session_id)
    try:
        product = service.get_product(req.product_id)
        register.add_to_cart(product, req.quantity)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return register.cart_view()


@router.put("/sessions/{session_id}/items/{product_id}")
async def update_item(session_id: str, product_id: str, req: QuantityUpdate):
    register = _register(session_id)
    try:
        register.update_quantity(product_id, req.quantity)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return register.cart_view()


@router.delete("/sessions/{session_id}/items/{product_id}")
async def remove_item(session_id: str, product_id: str):
    register = _register(session_id)
    try:
        register.remove_item(product_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return register.cart_view()


@router.post("/sessions/{session_id}/items/{product_id}/discount")
async def apply_discount(session_id: str, product_id: str, req: ManualDiscount):
    register = _register(session_id)
    try:
        register.apply_manual_discount(product_id, req.discount_type, req.value)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return register.cart_view()


@router.delete("/sessions/{session_id}/items/{product_id}/discount")
async def remove_discount(session_id: str, product_id: str):
    register = _register(session_id)
    try:
        register.remove_manual_discount(product_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    return register.cart_view()


@router.post("/sessions/{session_id}/checkout")
async def checkout(session_id: str, req: CheckoutRequest):
    """Price the sale, then close the session and stop its promotion updates."""
    register = _register(session_id)
    try:
        summary = register.checkout(req.loyalty_points, req.point_value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    register.close()
    get_registers().pop(session_id, None)
    return jsonable_encoder(summary)


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    register = _register(session_id)
    register.close()
    get_registers().pop(session_id, None)
    return {"success": True, "message": f"Session '{session_id}' closed"}
