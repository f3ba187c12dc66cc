# storefront/routes/integration.py
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_utils import seller_api_key
from storefront.db.database import get_db
from storefront.db.functions import admin as admin_db
from storefront.db.models import Seller
from storefront.ingestion import IngestionService

router = APIRouter(prefix="/integration", tags=["integration"])

ingestion_service = IngestionService()


@router.post("/products/batch")
async def batch_products(payload: dict = Body(...), seller: Seller = Depends(seller_api_key)):
    products = payload.get("products")
    if not isinstance(products, list):
        raise HTTPException(status_code=400, detail="Request body must contain a products array")

    job, results = await ingestion_service.process_api(products, seller_id=seller.id)
    return {
        "success": True,
        "data": {"jobId": job.id, "status": job.status.value, "stats": results},
    }


@router.get("/products/status/{job_id}")
async def batch_status(
    job_id: int,
    includeEvents: bool = False,
    seller: Seller = Depends(seller_api_key),
    db: AsyncSession = Depends(get_db),
):
    job = await admin_db.get_job(db, job_id, seller_id=seller.id)
    data = {"job": admin_db.job_to_dict(job)}
    if includeEvents:
        data["events"] = await admin_db.get_job_events(db, job.id)
    return {"success": True, "data": data}


@router.get("/products/{product_id}")
async def seller_product(product_id: int, seller: Seller = Depends(seller_api_key), db: AsyncSession = Depends(get_db)):
    product = await admin_db.get_seller_product(db, product_id, seller.id)
    return {"success": True, "data": {"product": product}}
