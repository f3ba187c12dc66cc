# storefront/main.py
import asyncio
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.config import CORS_ORIGINS, FRONTEND_URL, LOG_LEVEL, RABBITMQ_URL
from storefront.db.init_db import init_db
from storefront.notifications import consume_notifications
from storefront.routes import (
    admin,
    auth,
    cart,
    categories,
    chat,
    checkout,
    integration,
    orders,
    payments,
    products,
    reviews,
    support,
    support_assist,
)

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="storefront")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(CORS_ORIGINS + [FRONTEND_URL, "http://localhost:3000", "http://localhost:5173"])),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, products, categories, cart, checkout, orders, payments, reviews, support, support_assist, admin,
               integration, chat):
    app.include_router(module.router, prefix="/api")

consumer_task = None


@app.on_event("startup")
async def app_startup():
    global consumer_task
    await init_db()
    if RABBITMQ_URL:
        consumer_task = asyncio.create_task(consume_notifications())
    logger.info("Storefront API started")


@app.on_event("shutdown")
async def app_shutdown():
    if consumer_task is not None:
        consumer_task.cancel()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        content = {"success": False, **detail}
    elif exc.status_code == 404 and detail == "Not Found":
        content = {"success": False, "error": "Not found"}
    else:
        content = {"success": False, "error": detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


@app.get("/health")
async def health():
    return {"success": True, "data": "ok"}


if __name__ == "__main__":
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=False)
