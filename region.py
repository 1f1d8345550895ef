"""
Country / province / city reference data proxied from public APIs,
normalized to {code, name}.
"""
from typing import Any, List
from urllib.parse import quote

import requests

from config import get_config
from logging_setup import setup_logging
from schemas import Region

logger = setup_logging(__name__)
config = get_config()


class UpstreamError(Exception):
    """The third-party reference API failed or returned garbage."""


def _fetch(url: str) -> Any:
    try:
        r = requests.get(url, timeout=config.HTTP_TIMEOUT)
        r.raise_for_status()
        return r.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Upstream region API failed ({url}): {e}")
        raise UpstreamError(f"Upstream request failed: {url}") from e


def _rows(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def normalize_regions(payload: Any) -> List[Region]:
    """Map wilayah-style rows ({code|id, name|nama}) to Region, dropping incomplete ones."""
    out = []
    for row in _rows(payload):
        if not isinstance(row, dict):
            continue
        code = str(row.get("code") or row.get("id") or "")
        name = str(row.get("name") or row.get("nama") or "")
        if code and name:
            out.append(Region(code=code, name=name))
    return out


def normalize_countries(payload: Any) -> List[Region]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise UpstreamError("Unexpected countries payload")
    countries = [
        Region(code=code, name=str(v.get("country") or ""), region=v.get("region"))
        for code, v in data.items()
        if isinstance(v, dict)
    ]
    return sorted(countries, key=lambda c: c.name)


def countries() -> List[Region]:
    return normalize_countries(_fetch(config.COUNTRY_API_URL))


def provinces() -> List[Region]:
    return normalize_regions(_fetch(config.PROVINCE_API_URL))


def cities(province: str) -> List[Region]:
    return normalize_regions(_fetch(config.CITY_API_URL.format(province=quote(province, safe=""))))
