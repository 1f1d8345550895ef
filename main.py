import os
import re
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import schemas as erp_schemas
from category_tree import build_tree, search_tree
from config import get_config
from logging_setup import log_event, setup_logging
from make_po import clean_item_codes, make_po
from material_requests import (
    ACTIVE_STATUSES,
    build_dashboard,
    item_demand,
    item_demand_detail,
    project_deliveries,
)
from purchase_history import compare_item, supplier_items
from reference_data import load_reference_tables
from region import UpstreamError, cities, countries, provinces
from suppliers import (
    SupplierValidationError,
    build_supplier,
    next_item_id,
    next_supplier_id,
    supplier_name,
)
from utils import serialize_docs, serialize_doc

logger = setup_logging(__name__)
config = get_config()
tables = load_reference_tables()

app = FastAPI(title="Supplier & MR Dashboard Backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------------
# Error shape: every failure is {"error": "..."}
# -------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Database error"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def read_root():
    return {"message": "Supplier & MR Dashboard Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "❌ Not Set",
        "database_name": "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
        "webhook": "✅ Set" if config.PO_WEBHOOK_URL else "❌ Not Set",
    }
    if database.db is not None:
        response["database"] = "✅ Available"
        response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
        response["database_name"] = database.db.name
        response["connection_status"] = "Connected"
        try:
            response["collections"] = database.db.list_collection_names()[:20]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# -------------------------------------------------------------
# Expose schemas for tooling/validation
# -------------------------------------------------------------

@app.get("/schema")
def get_schema_definitions():
    def model_to_dict(model_cls) -> Dict[str, Any]:
        fields = {}
        for name, field_info in model_cls.model_fields.items():
            fields[name] = {
                "type": str(field_info.annotation),
                "required": field_info.is_required(),
                "default": None if field_info.is_required() else repr(field_info.default),
                "description": getattr(field_info, "description", None),
            }
        return {
            "model": model_cls.__name__,
            "fields": fields,
            "doc": (model_cls.__doc__ or "").strip(),
        }

    models = {}
    for attr in dir(erp_schemas):
        obj = getattr(erp_schemas, attr)
        if isinstance(obj, type) and issubclass(obj, BaseModel) and obj is not BaseModel:
            models[attr] = model_to_dict(obj)
    return models


# -------------------------------------------------------------
# Utilities
# -------------------------------------------------------------

def ensure_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")


def collection(name: str):
    ensure_db()
    return database.db[name]


def list_collection(name: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return serialize_docs(list(collection(name).find(filter_dict or {})))


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Request body as a dict; malformed or non-object JSON counts as {}."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# -------------------------------------------------------------
# Suppliers
# -------------------------------------------------------------

@app.get("/api/supplier")
def list_suppliers(response: Response):
    response.headers["Cache-Control"] = "no-store, no-cache"
    return list_collection(database.SUPPLIER)


def _create_supplier(body: Dict[str, Any]) -> Dict[str, Any]:
    supplier_name(body)
    new_id = next_supplier_id(collection(database.COUNTERS), collection(database.SUPPLIER))
    doc = build_supplier(body, new_id).model_dump()
    inserted_id = collection(database.SUPPLIER).insert_one(doc).inserted_id
    log_event(logger, "supplier", "created", {"id": new_id, "nama": doc["nama"]})
    return {"insertedId": str(inserted_id), "ok": True, "data": serialize_doc(doc)}


@app.post("/api/supplier", status_code=201)
async def create_supplier(request: Request):
    body = await read_json_object(request)
    try:
        return await run_in_threadpool(_create_supplier, body)
    except SupplierValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/supplier/{supplier_id}/items", response_model=List[erp_schemas.SupplierItem])
def list_supplier_items(supplier_id: str):
    txs = list(collection(database.TRANSACTION).find({"supplier": supplier_id}))
    return supplier_items(txs, supplier_id)


# -------------------------------------------------------------
# Material requests
# -------------------------------------------------------------

def filter_params(
    selectedStatus: Optional[List[str]] = Query(None),
    selectedBranch: Optional[str] = None,
    selectedDepartment: Optional[str] = None,
    selectedCostCenter: Optional[str] = None,
    selectedProject: Optional[str] = None,
    selectedType: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    required_start: Optional[str] = None,
    required_end: Optional[str] = None,
) -> erp_schemas.MRFilterParams:
    return erp_schemas.MRFilterParams(
        selected_status=selectedStatus,
        selected_branch=selectedBranch,
        selected_department=selectedDepartment,
        selected_cost_center=selectedCostCenter,
        selected_project=selectedProject,
        selected_type=selectedType,
        start_date=start_date,
        end_date=end_date,
        required_start=required_start,
        required_end=required_end,
    )


def active_material_requests() -> List[Dict[str, Any]]:
    return list_collection(database.MATERIAL_REQUEST, {"status": {"$in": ACTIVE_STATUSES}})


@app.get("/api/material-request")
def list_material_requests():
    return active_material_requests()


@app.get("/api/material-request/dashboard", response_model=erp_schemas.DashboardResponse)
def material_request_dashboard(
    params: erp_schemas.MRFilterParams = Depends(filter_params),
    date_field: str = Query("required_by", pattern="^(required_by|transaction_date)$"),
):
    return build_dashboard(active_material_requests(), params, tables, date_field)


@app.get("/api/material-request/item-demand", response_model=List[erp_schemas.ItemDemand])
def material_request_item_demand(
    params: erp_schemas.MRFilterParams = Depends(filter_params),
    only_needed: bool = True,
    search_id: str = "",
    search_name: str = "",
    supplier_id: Optional[str] = None,
):
    return item_demand(
        active_material_requests(),
        params,
        items=list_collection(database.ITEM),
        transactions=list_collection(database.TRANSACTION),
        tables=tables,
        only_needed=only_needed,
        search_id=search_id,
        search_name=search_name,
        supplier_id=supplier_id,
    )


@app.get("/api/material-request/item-demand/{item_code}", response_model=erp_schemas.ItemDemandDetail)
def material_request_item_demand_detail(item_code: str):
    return item_demand_detail(active_material_requests(), item_code)


@app.get("/api/material-request/project-delivery", response_model=List[erp_schemas.ProjectDelivery])
def material_request_project_delivery(params: erp_schemas.MRFilterParams = Depends(filter_params)):
    return project_deliveries(active_material_requests(), params, tables)


@app.post("/api/material-request/make-po")
async def make_purchase_order(request: Request):
    body = await read_json_object(request)
    item_codes = clean_item_codes(body.get("item_codes"))
    if not item_codes:
        raise HTTPException(status_code=400, detail="item_codes must be a non-empty array")
    po_meta = body.get("po_meta") if isinstance(body.get("po_meta"), dict) else None

    result = await run_in_threadpool(make_po, collection(database.MATERIAL_REQUEST), item_codes, po_meta)
    return result.model_dump(by_alias=True)


# -------------------------------------------------------------
# Items & purchase history
# -------------------------------------------------------------

@app.get("/api/item")
def list_items():
    return list_collection(database.ITEM)


@app.post("/api/item", status_code=201)
def create_item(payload: erp_schemas.ItemCreate):
    new_id = next_item_id(collection(database.COUNTERS), collection(database.ITEM))
    item = erp_schemas.Item(
        id=new_id,
        name=payload.name,
        description=payload.description or "-",
        brand=payload.brand,
        uom=payload.uom,
        category=payload.category,
    )
    database.create_document(database.ITEM, item)
    log_event(logger, "item", "created", {"id": new_id})
    return {"success": True, "data": item.model_dump(exclude_none=True)}


@app.get("/api/item/{mid}/compare", response_model=erp_schemas.ItemComparison)
def compare_item_prices(mid: str):
    item = collection(database.ITEM).find_one({"id": mid})
    if item is None:
        raise HTTPException(status_code=404, detail="Item tidak ditemukan")
    pattern = f"^{re.escape(mid)}$"
    txs = list(collection(database.TRANSACTION).find({
        "$or": [
            {"items.item_code": {"$regex": pattern, "$options": "i"}},
            {"item_code": {"$regex": pattern, "$options": "i"}},
        ]
    }))
    return compare_item(serialize_doc(item), txs, list(collection(database.SUPPLIER).find({})))


@app.get("/api/transaction")
def list_transactions():
    return list_collection(database.TRANSACTION)


# -------------------------------------------------------------
# Reference data
# -------------------------------------------------------------

def _tree_response(rows: List[Dict[str, Any]], selected: Optional[List[str]], q: str) -> Dict[str, Any]:
    roots, index = build_tree(rows)
    chosen = set(selected) if selected is not None else None
    matched, expanded = search_tree(q, index)
    return {
        "roots": [r.to_dict(chosen) for r in roots],
        "matched": sorted(matched),
        "expanded": sorted(expanded),
    }


@app.get("/api/category")
def list_categories():
    return list_collection(database.CATEGORY)


@app.get("/api/category/tree")
def category_tree(selected: Optional[List[str]] = Query(None), q: str = ""):
    return _tree_response(list_collection(database.CATEGORY), selected, q)


@app.get("/api/top")
def list_payment_terms():
    return list_collection(database.TOP)


@app.get("/api/top/tree")
def payment_term_tree(selected: Optional[List[str]] = Query(None), q: str = ""):
    return _tree_response(list_collection(database.TOP), selected, q)


@app.get("/api/uom")
def list_uoms():
    return list_collection(database.UOM)


# -------------------------------------------------------------
# Region proxy
# -------------------------------------------------------------

def _upstream(fetch, *args):
    try:
        return fetch(*args)
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/region/country", response_model=List[erp_schemas.Region])
def list_countries():
    return _upstream(countries)


@app.get("/api/region/province", response_model=List[erp_schemas.Region])
def list_provinces():
    return _upstream(provinces)


@app.get("/api/region/city/{province}", response_model=List[erp_schemas.Region])
def list_cities(province: str):
    return _upstream(cities, province)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT, log_level=config.LOG_LEVEL.lower())
