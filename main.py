import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import config
from catalog import CatalogStore
from database import ensure_indexes, get_db
from errors import WorkshopError
from ledger import OrderLedger
from schemas import CatalogItemCreate, OrderCreate, OrderStatus, ProductUpdate, ServiceUpdate, StatusUpdate
from workflow import create_order as run_create_order

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s",
)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Unique ids and order numbers rely on these indexes; refuse to serve without them.
    db = app.dependency_overrides.get(get_db, get_db)()
    ensure_indexes(db)
    log.info("Database indexes ready on %s", db.name)
    yield


app = FastAPI(title="Workshop Service Order API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WorkshopError)
async def workshop_error_handler(request: Request, exc: WorkshopError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ----- Dependencies -----

def get_catalog(db: Database = Depends(get_db)) -> CatalogStore:
    return CatalogStore(db)


def get_ledger(db: Database = Depends(get_db)) -> OrderLedger:
    return OrderLedger(db)


# ----- Health -----
@app.get("/")
def read_root():
    return {"message": "Workshop Service Order API running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["database_name"] = db.name
        response["collections"] = db.list_collection_names()[:10]
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----- Catalog -----
@app.post("/api/items", status_code=201)
def create_catalog_item(item: CatalogItemCreate, catalog: CatalogStore = Depends(get_catalog)):
    item_id = catalog.create(item.kind, item.name, item.price, item.stock)
    return {"id": item_id}


@app.get("/api/products")
def list_products(catalog: CatalogStore = Depends(get_catalog)):
    return catalog.list_products()


@app.get("/api/products/{product_id}")
def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.get_product(product_id)


@app.put("/api/products/{product_id}", status_code=204)
def update_product(product_id: str, body: ProductUpdate, catalog: CatalogStore = Depends(get_catalog)):
    catalog.update_product(product_id, body.name, body.price, body.stock)


@app.delete("/api/products/{product_id}", status_code=204)
def delete_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
    catalog.delete_product(product_id)


@app.get("/api/services")
def list_services(catalog: CatalogStore = Depends(get_catalog)):
    return catalog.list_services()


@app.get("/api/services/{service_id}")
def get_service(service_id: str, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.get_service(service_id)


@app.put("/api/services/{service_id}", status_code=204)
def update_service(service_id: str, body: ServiceUpdate, catalog: CatalogStore = Depends(get_catalog)):
    catalog.update_service(service_id, body.name, body.price)


@app.delete("/api/services/{service_id}", status_code=204)
def delete_service(service_id: str, catalog: CatalogStore = Depends(get_catalog)):
    catalog.delete_service(service_id)


@app.get("/api/items/{item_id}/order-lines")
def item_order_lines(item_id: str, ledger: OrderLedger = Depends(get_ledger)):
    return ledger.lines_for_item(item_id)


# ----- Orders -----
@app.post("/api/orders", status_code=201)
def create_order(req: OrderCreate,
                 catalog: CatalogStore = Depends(get_catalog),
                 ledger: OrderLedger = Depends(get_ledger)):
    return run_create_order(catalog, ledger, req)


@app.get("/api/orders")
def list_orders(status: Optional[OrderStatus] = None, ledger: OrderLedger = Depends(get_ledger)):
    return ledger.list_orders(status)


@app.get("/api/orders/incomplete")
def list_incomplete_orders(ledger: OrderLedger = Depends(get_ledger)):
    return ledger.list_incomplete()


@app.get("/api/orders/by-number/{order_number}")
def get_order_by_number(order_number: str, ledger: OrderLedger = Depends(get_ledger)):
    return ledger.get_by_number(order_number)


@app.get("/api/orders/{order_id}")
def get_order_details(order_id: str, ledger: OrderLedger = Depends(get_ledger)):
    return ledger.get_order(order_id)


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdate, ledger: OrderLedger = Depends(get_ledger)):
    return {"order_id": ledger.update_status(order_id, body.status)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
