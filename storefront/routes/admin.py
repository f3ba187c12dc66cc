# storefront/routes/admin.py
import logging
import os
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.audit import write_audit
from storefront.auth_utils import admin_required
from storefront.config import UPLOAD_DIR
from storefront.db.database import get_db
from storefront.db.functions import admin as admin_db
from storefront.db.functions.catalog import product_to_dict
from storefront.db.functions.orders import get_stats, list_all_orders, order_to_dict, update_order_status
from storefront.db.models import User
from storefront.db.schemas import OrderStatusUpdate, SellerCreate, SellerUpdate
from storefront.ingestion import IngestionService, ProductValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(admin_required)])

ingestion_service = IngestionService()


def _save_upload(upload: UploadFile, content: bytes) -> str:
    directory = os.path.join(UPLOAD_DIR, "csv")
    os.makedirs(directory, exist_ok=True)
    safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", os.path.basename(upload.filename or "upload.csv"))
    path = os.path.join(directory, f"{datetime.utcnow():%Y%m%d%H%M%S%f}-{safe_name}")
    with open(path, "wb") as f:
        f.write(content)
    return path


# Products

@router.post("/products", status_code=201)
async def create_product(payload: dict = Body(...), admin: User = Depends(admin_required)):
    if not payload.get("name"):
        raise HTTPException(status_code=400, detail="Product name is required")
    try:
        product, created, job = await ingestion_service.process_manual(payload, user_id=admin.id)
    except ProductValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": {"id": product.id, "created": created, "jobId": job.id}}


@router.patch("/products/{product_id}")
async def edit_product(
    product_id: int,
    payload: dict = Body(...),
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
):
    product = await admin_db.update_product(db, product_id, payload)
    await write_audit(admin.id, "update", "products", product.id, payload)
    return {"success": True, "data": product_to_dict(product)}


@router.delete("/products/{product_id}")
async def remove_product(product_id: int, admin: User = Depends(admin_required), db: AsyncSession = Depends(get_db)):
    await admin_db.delete_product(db, product_id)
    await write_audit(admin.id, "delete", "products", product_id)
    return {"success": True, "data": None}


@router.post("/products/csv-upload")
async def upload_csv(
    csv: Optional[UploadFile] = File(None),
    hasHeader: str = Form("true"),
    delimiter: str = Form(","),
    admin: User = Depends(admin_required),
):
    if csv is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if csv.filename and not csv.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    path = _save_upload(csv, await csv.read())
    logger.info("Saved CSV upload %s to %s", csv.filename, path)
    job, stats = await ingestion_service.process_csv(
        path,
        user_id=admin.id,
        has_header=hasHeader.lower() != "false",
        delimiter=delimiter or ",",
    )
    return {"success": True, "data": {"jobId": job.id, "status": job.status.value, "stats": stats}}


# Ingestion jobs

@router.get("/ingestion-jobs")
async def ingestion_jobs(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"jobs": await admin_db.list_jobs(db)}}


@router.get("/ingestion-jobs/{job_id}")
async def ingestion_job(job_id: int, db: AsyncSession = Depends(get_db)):
    job = await admin_db.get_job(db, job_id)
    return {
        "success": True,
        "data": {"job": admin_db.job_to_dict(job), "events": await admin_db.get_job_events(db, job_id)},
    }


# Sellers

@router.get("/sellers")
async def sellers(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"sellers": await admin_db.list_sellers(db)}}


@router.post("/sellers", status_code=201)
async def add_seller(payload: SellerCreate, admin: User = Depends(admin_required), db: AsyncSession = Depends(get_db)):
    seller, api_key = await admin_db.create_seller(
        db, payload.name, payload.contact_email, payload.webhook_url, payload.status
    )
    await write_audit(admin.id, "create", "sellers", seller.id, {"name": seller.name})
    return {"success": True, "data": {**admin_db.seller_to_dict(seller), "api_key": api_key}}


@router.patch("/sellers/{seller_id}")
async def edit_seller(
    seller_id: int,
    payload: SellerUpdate,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    seller = await admin_db.update_seller(db, seller_id, changes)
    await write_audit(admin.id, "update", "sellers", seller.id, changes)
    return {"success": True, "data": admin_db.seller_to_dict(seller)}


# Orders and stats

@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await get_stats(db)}


@router.get("/orders")
async def orders(status: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"orders": await list_all_orders(db, status)}}


@router.patch("/orders/{order_id}")
async def change_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
):
    order, previous = await update_order_status(db, order_id, payload.order_status)
    await write_audit(admin.id, "update_status", "orders", order.id,
                      {"from": previous.value, "to": order.order_status.value})
    return {"success": True, "data": order_to_dict(order)}
