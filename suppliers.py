"""
Supplier registration: sequential ids and payload normalization.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from schemas import PaymentTerm, Supplier

SUPPLIER_COUNTER = "supplier_nonerp"
SUPPLIER_PREFIX = "S-DN-"
SUPPLIER_WIDTH = 5

ITEM_COUNTER = "item_mid"
ITEM_PREFIX = "MID-"
ITEM_WIDTH = 4

OPTIONAL_FIELDS = [
    "alamat_pusat",
    "kota_pusat",
    "telp_sales",
    "email_sales",
    "telp_finance",
    "email_finance",
    "no_npwp",
    "nik",
    "alamat_pajak",
]


class SupplierValidationError(ValueError):
    pass


def format_id(prefix: str, seq: int, width: int) -> str:
    return f"{prefix}{seq:0{width}d}"


def _max_existing(source: Collection, prefix: str, width: int) -> int:
    pattern = f"^{re.escape(prefix)}(\\d{{{width}}})$"
    # zero-padded ids sort the same as strings and as numbers
    latest = list(source.find({"id": {"$regex": pattern}}).sort("id", -1).limit(1))
    if not latest:
        return 0
    m = re.match(pattern, str(latest[0].get("id", "")))
    return int(m.group(1)) if m else 0


def next_id(
    counters: Collection,
    source: Collection,
    key: str = SUPPLIER_COUNTER,
    prefix: str = SUPPLIER_PREFIX,
    width: int = SUPPLIER_WIDTH,
) -> str:
    """Allocate the next id from an atomic counter document.

    The counter is seeded once from the highest id already in `source`;
    every allocation after that is a single $inc.
    """
    if counters.find_one({"_id": key}) is None:
        start = _max_existing(source, prefix, width)
        try:
            counters.update_one({"_id": key}, {"$setOnInsert": {"seq": start}}, upsert=True)
        except DuplicateKeyError:
            # another request seeded it first
            pass

    doc = counters.find_one_and_update(
        {"_id": key},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    seq = doc["seq"] if doc and doc.get("seq") else 1
    return format_id(prefix, int(seq), width)


def next_supplier_id(counters: Collection, suppliers: Collection) -> str:
    return next_id(counters, suppliers, SUPPLIER_COUNTER, SUPPLIER_PREFIX, SUPPLIER_WIDTH)


def next_item_id(counters: Collection, items: Collection) -> str:
    return next_id(counters, items, ITEM_COUNTER, ITEM_PREFIX, ITEM_WIDTH)


def normalize_categories(value: Any) -> Optional[List[str]]:
    """Trim, drop blanks, de-duplicate (case-sensitive, first seen wins)."""
    if not isinstance(value, list):
        return None
    cleaned: List[str] = []
    for x in value:
        text = x.strip() if isinstance(x, str) else ""
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned or None


def parse_templates(value: Any) -> List[str]:
    if isinstance(value, list):
        return [t.strip() for t in value if isinstance(t, str) and t.strip()]
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return []


def derive_payment_terms(payment_terms: Any, templates: List[str]) -> Optional[List[Any]]:
    if isinstance(payment_terms, list) and payment_terms:
        return payment_terms
    if templates:
        return [PaymentTerm(description=t, value=0).model_dump() for t in templates]
    return None


def supplier_name(body: Dict[str, Any]) -> str:
    nama = body.get("nama")
    nama = nama.strip() if isinstance(nama, str) else ""
    if not nama:
        raise SupplierValidationError('Field "nama" wajib diisi')
    return nama


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _rating(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def build_supplier(body: Dict[str, Any], supplier_id: str) -> Supplier:
    """Build the stored supplier document from a create request."""
    templates = parse_templates(body.get("payment_terms_template"))
    now = datetime.utcnow()
    return Supplier(
        id=supplier_id,
        nama=supplier_name(body),
        payment_terms_template=", ".join(templates) or None,
        payment_terms=derive_payment_terms(body.get("payment_terms"), templates),
        categories=normalize_categories(body.get("categories")),
        rating=_rating(body.get("rating")),
        created_at=now,
        updated_at=now,
        **{f: _optional_text(body.get(f)) for f in OPTIONAL_FIELDS},
    )
