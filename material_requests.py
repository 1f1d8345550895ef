"""
Material-request filtering and dashboard aggregations.

Everything here is a pure function of the raw MR documents (as read from
MongoDB), the filter parameters and the reference tables. Input documents are
never mutated.
"""
import math
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from schemas import (
    BranchCount,
    DashboardResponse,
    DateBounds,
    DemandGroup,
    DepartmentSlice,
    ItemDemand,
    ItemDemandDetail,
    LastPurchase,
    MRDemand,
    MRFilterParams,
    MRPORefs,
    MRSummary,
    PORef,
    ProjectCount,
    ProjectDelivery,
    TypeCount,
)
from reference_data import MISC_TYPE, UNASSIGNED, ReferenceTables
from purchase_history import last_purchase_by_item
from utils import parse_date, to_number

ACTIVE_STATUSES = ["Draft", "Partially Ordered", "Pending"]
DEMAND_STATUSES = ["draft", "partially ordered"]
PARTIALLY_ORDERED = ["partially ordered", "partially_ordered", "partiallyordered"]

_DEFAULT_TABLES = ReferenceTables()


# -------------------------------------------------------------
# Quantities
# -------------------------------------------------------------

def ordered_quantity(item: Dict[str, Any]) -> float:
    return to_number(item.get("qty_total_po"))


def is_outstanding(item: Dict[str, Any]) -> bool:
    """A line still needs a PO while qty > qty_total_po (missing values count as 0).

    Must agree with make_po.outstanding_expr, which renders the same rule
    for MongoDB.
    """
    return to_number(item.get("qty")) > ordered_quantity(item)


def shortage(item: Dict[str, Any]) -> float:
    if not is_outstanding(item):
        return 0.0
    return to_number(item.get("qty")) - ordered_quantity(item)


# -------------------------------------------------------------
# Dates
# -------------------------------------------------------------

def day_start(value: Any) -> Optional[datetime]:
    dt = parse_date(value)
    return datetime.combine(dt.date(), time.min) if dt else None


def day_end(value: Any) -> Optional[datetime]:
    dt = parse_date(value)
    return datetime.combine(dt.date(), time.max) if dt else None


def _in_range(value: Any, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is None and end is None:
        return True
    dt = parse_date(value)
    if dt is None:
        return False
    if start is not None and dt < start:
        return False
    if end is not None and dt > end:
        return False
    return True


def _format_day(dt: Optional[datetime]) -> Optional[str]:
    return dt.date().isoformat() if dt else None


# -------------------------------------------------------------
# Derived dimensions
# -------------------------------------------------------------

def _text(value: Any) -> str:
    return "" if value is None else str(value)


def branch_for_cost_center(cost_center: Optional[str], tables: ReferenceTables = _DEFAULT_TABLES) -> str:
    code = _text(cost_center).strip().upper()
    if not code:
        return UNASSIGNED
    # overrides match the whole code segment, e.g. "SBY-PG" in "SBY-PG - IDS"
    segment = code.split(" - ", 1)[0].strip()
    for key, branch in tables.branch_overrides.items():
        if segment == key.strip().upper():
            return branch
    prefix = code[:3]
    return tables.branches.get(prefix, prefix)


def branch_of(mr: Dict[str, Any], tables: ReferenceTables = _DEFAULT_TABLES) -> str:
    return branch_for_cost_center(mr.get("cost_center"), tables)


def map_department(raw: Optional[str], tables: ReferenceTables = _DEFAULT_TABLES) -> str:
    key = _text(raw).strip().upper()
    if not key:
        return ""
    return tables.departments.get(key, key)


def classify_project(project: Optional[str], tables: ReferenceTables = _DEFAULT_TABLES) -> Optional[str]:
    text = _text(project).strip()
    if not text:
        return None
    for name, pattern in tables.compiled_rules():
        if pattern.search(text):
            return name
    return None


def mr_type(mr: Dict[str, Any], tables: ReferenceTables = _DEFAULT_TABLES) -> str:
    found = {classify_project(it.get("project"), tables) for it in _items(mr)}
    for name, _ in tables.type_rules:
        if name in found:
            return name
    return MISC_TYPE


def _items(mr: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = mr.get("items")
    if not isinstance(items, list):
        return []
    return [it for it in items if isinstance(it, dict)]


def _any_item_contains(mr: Dict[str, Any], field: str, needle: str) -> bool:
    needle = needle.lower()
    return any(needle in _text(it.get(field)).lower() for it in _items(mr))


# -------------------------------------------------------------
# Filtering
# -------------------------------------------------------------

def normalize_statuses(selected: Any) -> List[str]:
    if not selected:
        return []
    if isinstance(selected, (list, tuple, set)):
        return [_text(s).strip().lower() for s in selected if _text(s).strip()]
    return [_text(selected).strip().lower()]


def _params(params: Optional[MRFilterParams]) -> MRFilterParams:
    return params if params is not None else MRFilterParams()


def without(params: Optional[MRFilterParams], *fields: str) -> MRFilterParams:
    """Copy of params with the named filters cleared."""
    return _params(params).model_copy(update={f: None for f in fields})


def filter_material_requests(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> List[Dict[str, Any]]:
    """Return the MRs matching every active filter."""
    p = _params(params)
    statuses = normalize_statuses(p.selected_status)
    start, end = day_start(p.start_date), day_end(p.end_date)
    req_start, req_end = day_start(p.required_start), day_end(p.required_end)

    result = []
    for mr in mrs:
        if not isinstance(mr, dict):
            continue
        if statuses and _text(mr.get("status")).strip().lower() not in statuses:
            continue
        if not _in_range(mr.get("transaction_date"), start, end):
            continue
        if not _in_range(mr.get("required_by"), req_start, req_end):
            continue
        if p.selected_department and not _any_item_contains(mr, "department", p.selected_department):
            continue
        if p.selected_cost_center and not _any_item_contains(mr, "cost_center", p.selected_cost_center):
            continue
        if p.selected_project and not _any_item_contains(mr, "project", p.selected_project):
            continue
        if p.selected_branch and branch_of(mr, tables) != p.selected_branch:
            continue
        if p.selected_type and mr_type(mr, tables) != p.selected_type:
            continue
        result.append(mr)
    return result


# -------------------------------------------------------------
# Aggregations
# -------------------------------------------------------------

def _ranked(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    # sorted() is stable, so ties keep first-seen order
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)


def branch_summary(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> Tuple[List[BranchCount], int]:
    counts = {name: 0 for name in tables.known_branches()}
    filtered = filter_material_requests(mrs, params, tables)
    for mr in filtered:
        branch = branch_of(mr, tables)
        counts[branch] = counts.get(branch, 0) + 1
    data = [BranchCount(name=name, count=count) for name, count in _ranked(counts)]
    return data, len(filtered)


def department_summary(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> Tuple[List[DepartmentSlice], int]:
    counts: Dict[str, int] = {}
    for mr in filter_material_requests(mrs, params, tables):
        seen = []
        for it in _items(mr):
            dept = map_department(it.get("department"), tables)
            if dept and dept not in seen:
                seen.append(dept)
        for dept in seen:
            counts[dept] = counts.get(dept, 0) + 1

    ranked = _ranked(counts)
    total = sum(count for _, count in ranked)
    data = []
    for rank, (name, count) in enumerate(ranked):
        percent = math.floor(count / total * 100 + 0.5) if total else 0
        color = tables.palette[rank % len(tables.palette)] if tables.palette else ""
        data.append(DepartmentSlice(name=name, count=count, percent=percent, color=color))
    return data, total


def project_summary(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> List[ProjectCount]:
    """Item lines per project, most frequent first."""
    counts: Dict[str, int] = {}
    for mr in filter_material_requests(mrs, params, tables):
        for it in _items(mr):
            project = _text(it.get("project")).strip()
            if project:
                counts[project] = counts.get(project, 0) + 1
    return [ProjectCount(name=name, count=count) for name, count in _ranked(counts)]


def type_summary(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> List[TypeCount]:
    counts = {name: 0 for name in tables.type_names()}
    for mr in filter_material_requests(mrs, params, tables):
        kind = mr_type(mr, tables)
        counts[kind] = counts.get(kind, 0) + 1
    return [TypeCount(type=name, count=count) for name, count in counts.items()]


def _status_matches(status: str, candidates: List[str]) -> bool:
    return any(status == c or c in status for c in candidates)


def summarize(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
) -> MRSummary:
    """Counters for the summary cards.

    latest_date and nearest_required_by both keep the earliest timestamp
    among the matches.
    """
    filtered = filter_material_requests(mrs, params, tables)
    draft = partial = pending = 0
    earliest_tx: Optional[datetime] = None
    earliest_req: Optional[datetime] = None

    for mr in filtered:
        status = _text(mr.get("status")).strip().lower()
        if _status_matches(status, ["draft"]):
            draft += 1
        if _status_matches(status, PARTIALLY_ORDERED):
            partial += 1
        if _status_matches(status, ["pending"]):
            pending += 1

        tx = parse_date(mr.get("transaction_date"))
        if tx and (earliest_tx is None or tx < earliest_tx):
            earliest_tx = tx
        req = parse_date(mr.get("required_by"))
        if req and (earliest_req is None or req < earliest_req):
            earliest_req = req

    return MRSummary(
        total_mr=len(filtered),
        draft_count=draft,
        partially_ordered_count=partial,
        pending_count=pending,
        latest_date=_format_day(earliest_tx),
        nearest_required_by=_format_day(earliest_req),
    )


def date_bounds(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
    date_field: str = "required_by",
) -> DateBounds:
    dates = [
        dt for dt in (parse_date(mr.get(date_field)) for mr in filter_material_requests(mrs, params, tables))
        if dt is not None
    ]
    if not dates:
        return DateBounds()
    return DateBounds(min_date=_format_day(min(dates)), max_date=_format_day(max(dates)))


def item_demand(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    items: Optional[Iterable[Dict[str, Any]]] = None,
    transactions: Optional[Iterable[Dict[str, Any]]] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
    only_needed: bool = True,
    search_id: str = "",
    search_name: str = "",
    supplier_id: Optional[str] = None,
) -> List[ItemDemand]:
    """Requested vs. ordered quantities per item for draft and partially ordered MRs."""
    p = _params(params)
    if not p.selected_status:
        p = p.model_copy(update={"selected_status": DEMAND_STATUSES})

    rows: Dict[str, ItemDemand] = {}
    for it in items or []:
        code = _text(it.get("id")).strip()
        if code:
            rows[code] = ItemDemand(item_code=code, item_name=it.get("name"), uom=it.get("uom"))

    for mr in filter_material_requests(mrs, p, tables):
        status = _text(mr.get("status")).strip().lower()
        if status not in DEMAND_STATUSES:
            continue
        for it in _items(mr):
            code = _text(it.get("item_code")).strip()
            if not code:
                continue
            row = rows.get(code)
            if row is None:
                row = rows[code] = ItemDemand(item_code=code, item_name=it.get("item_name"), uom=it.get("uom"))
            row.asked += to_number(it.get("qty"))
            row.shortage += shortage(it)
            if status != "draft":
                row.ordered += ordered_quantity(it)
                row.received += to_number(it.get("received_qty"))

    last = last_purchase_by_item(transactions or [])
    id_q, name_q = search_id.strip().lower(), search_name.strip().lower()
    result = []
    for code, row in rows.items():
        purchase = last.get(code)
        if purchase:
            row.last_purchase = LastPurchase(**purchase)
        if id_q and id_q not in code.lower():
            continue
        if name_q and name_q not in _text(row.item_name).lower():
            continue
        if only_needed and row.shortage <= 0:
            continue
        if supplier_id:
            sid = (row.last_purchase.supplier_id or row.last_purchase.supplier_name) if row.last_purchase else None
            if _text(sid) != supplier_id:
                continue
        result.append(row)
    return result


DETAIL_STATUSES = ["draft", "partially ordered", "pending"]


def _group(lines: List[Tuple[Dict[str, Any], Dict[str, Any]]], field: str) -> List[DemandGroup]:
    groups: Dict[str, DemandGroup] = {}
    for _, it in lines:
        key = _text(it.get(field)).strip()
        if not key:
            continue
        group = groups.setdefault(key, DemandGroup(name=key))
        group.count += 1
        group.asked += to_number(it.get("qty"))
        group.ordered += ordered_quantity(it)
    return list(groups.values())


def _po_refs(item: Dict[str, Any]) -> List[PORef]:
    entries = item.get("po_detail")
    if not isinstance(entries, list):
        return []
    return [
        PORef(
            po_name=_text(p.get("po_name") or p.get("name")),
            transaction_date=_text(p.get("transaction_date") or p.get("date")),
            supplier=_text(p.get("supplier")),
            qty=to_number(p.get("qty")),
            uom=_text(p.get("uom")),
        )
        for p in entries
        if isinstance(p, dict)
    ]


def item_demand_detail(mrs: Iterable[Dict[str, Any]], item_code: str) -> ItemDemandDetail:
    """Outstanding lines of one item per MR, project, cost center and department.

    PO references are collected from every MR carrying the item, finished
    lines included.
    """
    code = _text(item_code).strip().lower()
    lines: List[Tuple[Dict[str, Any], Dict[str, Any]]] = []
    purchase_orders: List[MRPORefs] = []

    for mr in mrs:
        if not code or not isinstance(mr, dict):
            continue
        matched = [it for it in _items(mr) if _text(it.get("item_code")).strip().lower() == code]
        if not matched:
            continue
        refs = [ref for it in matched for ref in _po_refs(it)]
        if refs:
            purchase_orders.append(MRPORefs(mr_name=_text(mr.get("name")), po_entries=refs))
        if _text(mr.get("status")).strip().lower() in DETAIL_STATUSES:
            lines.extend((mr, it) for it in matched if is_outstanding(it))

    per_mr: Dict[str, MRDemand] = {}
    for mr, it in lines:
        name = _text(mr.get("name"))
        row = per_mr.get(name)
        if row is None:
            row = per_mr[name] = MRDemand(
                name=name,
                required_by=_text(mr.get("required_by")) or None,
                status=_text(mr.get("status")) or None,
            )
        row.asked += to_number(it.get("qty"))
        row.ordered += ordered_quantity(it)

    return ItemDemandDetail(
        item_code=_text(item_code).strip(),
        material_requests=list(per_mr.values()),
        projects=_group(lines, "project"),
        cost_centers=_group(lines, "cost_center"),
        departments=_group(lines, "department"),
        purchase_orders=purchase_orders,
    )


def project_deliveries(
    mrs: Iterable[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
    today: Optional[date] = None,
) -> List[ProjectDelivery]:
    """Item lines per project with the next delivery date.

    The delivery date is the first one on or after today, else the earliest.
    Rows are ordered by line count, then by delivery date (missing last).
    """
    today = today or date.today()
    counts: Dict[str, int] = {}
    dates: Dict[str, List[date]] = {}
    for mr in filter_material_requests(mrs, params, tables):
        for it in _items(mr):
            project = _text(it.get("project")).strip()
            if not project:
                continue
            counts[project] = counts.get(project, 0) + 1
            delivery = parse_date(it.get("delivery_date"))
            dates.setdefault(project, [])
            if delivery is not None:
                dates[project].append(delivery.date())

    rows = []
    for name, count in counts.items():
        known = sorted(dates[name])
        upcoming = [d for d in known if d >= today]
        chosen = upcoming[0] if upcoming else (known[0] if known else None)
        rows.append((name, count, chosen))
    rows.sort(key=lambda r: (-r[1], r[2] or date.max))

    return [
        ProjectDelivery(name=name, count=count, delivery_date=chosen.isoformat() if chosen else None)
        for name, count, chosen in rows
    ]


def build_dashboard(
    mrs: List[Dict[str, Any]],
    params: Optional[MRFilterParams] = None,
    tables: ReferenceTables = _DEFAULT_TABLES,
    date_field: str = "required_by",
) -> DashboardResponse:
    """Filtered MRs plus every chart.

    Each facet drops its own filter so the other values stay selectable.
    """
    p = _params(params)
    branches, branch_total = branch_summary(mrs, without(p, "selected_branch"), tables)
    departments, department_total = department_summary(mrs, without(p, "selected_department"), tables)
    bounds_params = without(p, "start_date", "end_date", "required_start", "required_end")
    return DashboardResponse(
        filtered=filter_material_requests(mrs, p, tables),
        summary=summarize(mrs, p, tables),
        branches=branches,
        branch_total=branch_total,
        departments=departments,
        department_total=department_total,
        projects=project_summary(mrs, without(p, "selected_project"), tables),
        types=type_summary(mrs, without(p, "selected_type"), tables),
        date_bounds=date_bounds(mrs, bounds_params, tables, date_field),
    )
