import logging
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from dispensary_pricing import __version__
from dispensary_pricing.api.pos_api import router as pos_router
from dispensary_pricing.api.state import get_service
from dispensary_pricing.config.log_setup import setup_logging
from dispensary_pricing.services.pricing_service import PricingService

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dispensary Pricing API",
    description="Shared pricing for the POS register, storefront cart and TV menus",
    version=__version__
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# POS register sessions
app.include_router(pos_router)


class PriceRequest(BaseModel):
    product_id: str
    quantity: float = 1


class QuoteRequest(BaseModel):
    items: Dict[str, float]
    tax_rate: Optional[float] = Field(default=None, ge=0)
    loyalty_points: float = Field(default=0, ge=0)
    point_value: float = Field(default=0.0, ge=0)


@app.get("/")
async def root():
    return {"status": "online", "message": "Dispensary Pricing API Active"}


@app.post("/price")
async def price_product(req: PriceRequest, service: PricingService = Depends(get_service)):
    try:
        calc = service.price(req.product_id, req.quantity)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    payload = calc.to_dict()
    payload["productId"] = req.product_id
    payload["quantity"] = calc.quantity
    payload["warnings"] = calc.warnings
    return payload


@app.post("/cart/quote")
async def quote_cart(req: QuoteRequest, service: PricingService = Depends(get_service)):
    try:
        lines, totals = service.quote(
            req.items,
            tax_rate=req.tax_rate,
            loyalty_points=req.loyalty_points,
            point_value=req.point_value,
        )
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "items": [line.to_pos_dict() for line in lines],
        "totals": totals.to_dict(),
    }


@app.get("/menu")
async def get_menu(
    categories: Optional[str] = None,
    vendor_id: Optional[str] = None,
    service: PricingService = Depends(get_service)
):
    wanted = [c.strip() for c in categories.split(',')] if categories else None
    entries = service.menu(categories=wanted, vendor_id=vendor_id)
    return {"count": len(entries), "products": [e.to_dict() for e in entries]}


@app.get("/promotions/active")
async def get_active_promotions(vendor_id: Optional[str] = None, service: PricingService = Depends(get_service)):
    promos = service.active_promotions(vendor_id=vendor_id)
    return jsonable_encoder({"count": len(promos), "promotions": promos})


@app.post("/promotions/reload")
async def reload_promotions(service: PricingService = Depends(get_service)):
    """Reload data from disk and re-price every open register."""
    delivered = service.reload_data()
    return {"success": True, "sessions_updated": delivered, "promotions": len(service.promotions)}


@app.get("/system/status")
async def get_status(service: PricingService = Depends(get_service)):
    status = service.status()
    status["engine_active"] = True
    status["version"] = __version__
    return status
