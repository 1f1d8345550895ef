"""
MongoDB access helpers.

`db` is None when DATABASE_URL is not configured; callers check before use.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import get_config

config = get_config()

# Collection names
SUPPLIER = "master_supplier"
COUNTERS = "counters"
MATERIAL_REQUEST = "material_request"
ITEM = "master_item"
CATEGORY = "master_category"
UOM = "master_uom"
TOP = "master_top"
TRANSACTION = "transaction"

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if db is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)

