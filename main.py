import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from catalog import list_shop_products, list_shops
from config import settings
from customers import find_prefill
from logger import get_logger
from orders import get_bulk_info, place_order, place_order_in_transaction
from schemas import (
    BulkInfoRequest,
    ObjectIdStr,
    PlaceOrderRequest,
    PrefillRequest,
    ProductsQuery,
)
from validation import format_validation_errors

logger = get_logger("server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.mongodb_uri:
        raise RuntimeError("MONGODB_URI is not set")
    client = database.connect(settings.mongodb_uri)
    db = database.get_database(client, settings.database_name)
    database.ensure_indexes(db)
    app.state.client = client
    app.state.db = db
    logger.info(f"Serving API under {settings.api_prefix}")
    try:
        yield
    finally:
        database.close(client)


app = FastAPI(title="Shop Orders API", lifespan=lifespan)

# Wildcard echoes the request origin; credentialed requests reject "*".
_any_origin = settings.cors_origins == ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[] if _any_origin else settings.cors_origins,
    allow_origin_regex=".*" if _any_origin else None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db(request: Request) -> Database:
    return request.app.state.db


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=format_validation_errors(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    elif exc.status_code in (404, 405) and request.url.path.startswith(settings.api_prefix):
        return JSONResponse(
            status_code=404, content={"error": "Not Found", "path": request.url.path}
        )
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        status_code = 500
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc) or "Internal Server Error"},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

api = APIRouter(prefix=settings.api_prefix)


@api.get("/health")
def health():
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}


@api.get("/shops")
def shops(db: Database = Depends(get_db)):
    return list_shops(db)


@api.get("/shops/{id}/products")
def shop_products(
    id: ObjectIdStr,
    query: Annotated[ProductsQuery, Query()],
    db: Database = Depends(get_db),
):
    return list_shop_products(db, id, sort=query.sort, order=query.order)


@api.post("/customers/prefill")
def customer_prefill(payload: PrefillRequest, db: Database = Depends(get_db)):
    return find_prefill(db, payload.email, payload.phone)


@api.post("/orders", status_code=201)
def create_orders(
    payload: PlaceOrderRequest, request: Request, db: Database = Depends(get_db)
):
    if settings.use_transactions:
        order_ids = place_order_in_transaction(request.app.state.client, db, payload)
    else:
        order_ids = place_order(db, payload)
    return {"orderIds": order_ids}


@api.post("/orders/bulk-info")
def orders_bulk_info(payload: BulkInfoRequest, db: Database = Depends(get_db)):
    return get_bulk_info(db, payload.id_list())


app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    if not settings.mongodb_uri:
        logger.error("MONGODB_URI not found")
        sys.exit(1)
    uvicorn.run(app, host=settings.host, port=settings.port)
