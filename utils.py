"""
Shared helpers for loosely-typed ERP documents.
"""
import math
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from bson import ObjectId


def to_number(value: Any) -> float:
    """Coerce a quantity or price to float; missing or garbage values are 0.

    Mirrors MongoDB $convert to double with onNull/onError 0, which make_po
    relies on.
    """
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ERP date into a naive local datetime, or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            try:
                dt = datetime.fromisoformat(text.replace(" ", "T", 1))
            except ValueError:
                return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a Mongo document with ObjectIds turned into strings."""
    out = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            out[key] = str(value)
        elif isinstance(value, dict):
            out[key] = serialize_doc(value)
        elif isinstance(value, list):
            out[key] = [serialize_doc(v) if isinstance(v, dict) else (str(v) if isinstance(v, ObjectId) else v) for v in value]
        else:
            out[key] = value
    return out


def serialize_docs(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]
