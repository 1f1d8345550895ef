"""
Purchase history derived from ERP transactions: the last price a supplier
charged per item, and a cross-supplier price comparison for one item.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from schemas import ItemComparison, PriceStats, SupplierItem, SupplierOffer
from utils import parse_date, to_number

_EPOCH = datetime(1970, 1, 1)


def _when(value: Any) -> datetime:
    return parse_date(value) or _EPOCH


def _lines(tx: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Item lines of a transaction, falling back to the legacy root fields."""
    items = tx.get("items")
    if isinstance(items, list) and items:
        return [it for it in items if isinstance(it, dict)]
    if tx.get("item_code") and tx.get("item_name"):
        return [{
            "item_code": tx.get("item_code"),
            "item_name": tx.get("item_name"),
            "qty": tx.get("qty"),
            "rate": tx.get("rate"),
            "uom": tx.get("uom"),
        }]
    return []


def last_purchase_by_item(transactions: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Optional[str]]]:
    """item_code -> {supplier_id, supplier_name, date} of the newest transaction."""
    latest: Dict[str, Dict[str, Any]] = {}
    for tx in transactions:
        if not tx or not tx.get("transaction_date"):
            continue
        when = _when(tx.get("transaction_date"))
        for it in _lines(tx):
            code = str(it.get("item_code") or "")
            if not code:
                continue
            current = latest.get(code)
            if current is None or when > current["when"]:
                latest[code] = {
                    "when": when,
                    "supplier_id": str(tx.get("supplier") or ""),
                    "supplier_name": str(tx.get("supplier_name") or ""),
                    "date": str(tx.get("transaction_date")),
                }
    return {
        code: {k: v for k, v in entry.items() if k != "when"}
        for code, entry in latest.items()
    }


def supplier_items(transactions: Iterable[Dict[str, Any]], supplier_id: str) -> List[SupplierItem]:
    """Last purchase of every item bought from one supplier, sorted by name."""
    if not supplier_id:
        return []

    latest: Dict[str, SupplierItem] = {}
    latest_when: Dict[str, datetime] = {}
    for tx in transactions:
        if not tx or str(tx.get("supplier") or "") != str(supplier_id):
            continue
        when = _when(tx.get("transaction_date"))
        for it in _lines(tx):
            key = str(it.get("item_code") or it.get("item_name") or "").strip()
            if not key:
                continue
            # on equal dates the later row wins
            if key in latest_when and when < latest_when[key]:
                continue
            qty = it.get("qty")
            latest_when[key] = when
            latest[key] = SupplierItem(
                key=key,
                item_code=it.get("item_code"),
                item_name=it.get("item_name"),
                uom=it.get("uom"),
                last_price=to_number(it.get("rate")),
                last_purchase_at=str(tx.get("transaction_date") or when.isoformat()),
                qty=to_number(qty) if qty is not None else None,
                transaction_name=tx.get("name"),
            )

    return sorted(latest.values(), key=lambda s: (s.item_name or s.key).lower())


def compare_item(
    item: Dict[str, Any],
    transactions: Iterable[Dict[str, Any]],
    suppliers: Iterable[Dict[str, Any]],
) -> ItemComparison:
    """Latest offer per supplier for one MID, with rating and price stats."""
    mid = str(item.get("id") or "").lower()
    newest: Dict[str, Dict[str, Any]] = {}
    for tx in transactions:
        supplier_id = str(tx.get("supplier") or "")
        for it in _lines(tx):
            if str(it.get("item_code") or "").lower() != mid:
                continue
            when = _when(tx.get("transaction_date"))
            current = newest.get(supplier_id)
            if current is None or when > current["when"]:
                newest[supplier_id] = {"when": when, "tx": tx, "line": it}

    ratings = {str(s.get("id")): s.get("rating") for s in suppliers if s.get("id")}
    offers = []
    for supplier_id, entry in newest.items():
        tx, line = entry["tx"], entry["line"]
        rate, qty = to_number(line.get("rate")), to_number(line.get("qty"))
        offers.append(SupplierOffer(
            supplier_id=supplier_id,
            supplier_name=tx.get("supplier_name") or "",
            last_transaction=str(tx["transaction_date"]) if tx.get("transaction_date") else None,
            uom=line.get("uom"),
            rate_per_unit=rate,
            qty=qty,
            grand_total=rate * qty,
            rating=to_number(ratings.get(supplier_id)),
        ))

    stats = None
    if offers:
        prices = sorted(o.rate_per_unit for o in offers)
        stats = PriceStats(
            cheapest=prices[0],
            median=prices[len(prices) // 2],
            highest=prices[-1],
            count=len(offers),
        )

    return ItemComparison(item=item, suppliers=offers, stats=stats)
