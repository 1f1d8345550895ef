"""
Make-PO flow: flag outstanding MR lines and notify the PO automation.

The lines that go into the webhook payload and the lines that get
`is_po = true` are selected by the same expression (`outstanding_expr`),
so the payload and the stored flags always agree.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pymongo.collection import Collection

from config import get_config
from logging_setup import log_event, setup_logging
from schemas import MakePOResponse, WebhookEntry

logger = setup_logging(__name__)
config = get_config()


def clean_item_codes(item_codes: Any) -> List[str]:
    """Trimmed, de-duplicated item codes; anything that isn't a string is dropped."""
    if not isinstance(item_codes, list):
        return []
    codes: List[str] = []
    for code in item_codes:
        if isinstance(code, str) and code.strip() and code.strip() not in codes:
            codes.append(code.strip())
    return codes


def quantity_expr(field: str) -> Dict[str, Any]:
    """Numeric value of a quantity field; missing, null or unconvertible values are 0."""
    return {"$convert": {"input": field, "to": "double", "onError": 0, "onNull": 0}}


def outstanding_expr(item: str, item_codes: List[str]) -> Dict[str, Any]:
    """Aggregation expression: item code requested and qty > qty_total_po.

    Quantities are converted the same way utils.to_number converts them on
    the read path, so string-typed quantities compare numerically.
    """
    return {
        "$and": [
            {"$in": [f"{item}.item_code", {"$literal": item_codes}]},
            {"$gt": [quantity_expr(f"{item}.qty"), quantity_expr(f"{item}.qty_total_po")]},
        ]
    }


def outstanding_match(item_codes: List[str]) -> Dict[str, Any]:
    """Document filter: MRs with at least one outstanding line for item_codes."""
    return {
        "items.item_code": {"$in": item_codes},
        "$expr": {
            "$anyElementTrue": [{
                "$map": {
                    "input": {"$ifNull": ["$items", []]},
                    "as": "it",
                    "in": outstanding_expr("$$it", item_codes),
                }
            }]
        },
    }


def collect_payload(coll: Collection, item_codes: List[str]) -> List[WebhookEntry]:
    pipeline = [
        {"$match": outstanding_match(item_codes)},
        {"$unwind": "$items"},
        {"$match": {"$expr": outstanding_expr("$items", item_codes)}},
        {"$project": {"_id": 0, "mr_name": "$name", "item_code": "$items.item_code"}},
    ]
    return [WebhookEntry(**row) for row in coll.aggregate(pipeline)]


def mark_items(coll: Collection, item_codes: List[str], po_meta: Optional[Dict[str, Any]] = None):
    """Set is_po on every outstanding line in one update_many.

    qty_total_po and po_detail are left alone; the PO automation fills them in.
    """
    update: Dict[str, Any] = {
        "items": {
            "$map": {
                "input": "$items",
                "as": "it",
                "in": {
                    "$cond": [
                        outstanding_expr("$$it", item_codes),
                        {"$mergeObjects": ["$$it", {"is_po": True}]},
                        "$$it",
                    ]
                },
            }
        },
        "updated_at": datetime.utcnow(),
    }
    if po_meta:
        update["last_po_meta"] = {"$literal": po_meta}
    return coll.update_many(outstanding_match(item_codes), [{"$set": update}])


def send_webhook(payload: List[WebhookEntry], url: Optional[str] = None, timeout: Optional[float] = None) -> bool:
    """POST the payload to the automation webhook. Failures are logged, never raised."""
    url = url if url is not None else config.PO_WEBHOOK_URL
    if not url:
        logger.warning("PO_WEBHOOK_URL not set; skipping make-po webhook")
        return False

    body = [entry.model_dump() for entry in payload]
    try:
        r = requests.post(url, json=body, timeout=timeout or config.HTTP_TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        log_event(
            logger,
            "make-po",
            "webhook failed",
            {"error": str(e), "entries": len(body)},
            level=logging.ERROR,
        )
        return False

    log_event(logger, "make-po", "webhook sent", {"entries": len(body), "status": r.status_code})
    return True


def make_po(
    coll: Collection,
    item_codes: List[str],
    po_meta: Optional[Dict[str, Any]] = None,
    webhook_url: Optional[str] = None,
) -> MakePOResponse:
    """Commit the is_po flags, then notify the automation (best effort)."""
    payload = collect_payload(coll, item_codes)
    result = mark_items(coll, item_codes, po_meta)

    log_event(logger, "make-po", "items flagged", {
        "item_codes": item_codes,
        "matched": result.matched_count,
        "modified": result.modified_count,
        "payload": len(payload),
    })

    sent: List[WebhookEntry] = []
    if payload and send_webhook(payload, url=webhook_url):
        sent = payload

    return MakePOResponse(
        matched_count=result.matched_count,
        modified_count=result.modified_count,
        webhook_sent_for=sent,
    )
