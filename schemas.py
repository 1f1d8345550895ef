"""
Supplier & Material-Request Database Schemas

Each Pydantic model below describes a MongoDB document or an API payload.
Stored documents live in these collections:
- Supplier -> "master_supplier"
- Item -> "master_item"
- MaterialRequest -> "material_request"
- Transaction -> "transaction"
- Category -> "master_category", Top -> "master_top", Uom -> "master_uom"

Material requests and transactions are imported from the ERP; this service
only flags MR lines (`is_po`) and never deletes them.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------
# Material requests
# ---------------------------------------------------------------------

class PODetail(BaseModel):
    po_name: Optional[str] = None
    supplier: Optional[str] = None
    transaction_date: Optional[str] = None
    qty: Optional[float] = None
    uom: Optional[str] = None

class MaterialRequestItem(BaseModel):
    detail_name: Optional[str] = None
    idx: Optional[int] = None
    item_code: str
    item_name: Optional[str] = None
    qty: float = Field(0, description="Requested quantity")
    uom: Optional[str] = None
    project: Optional[str] = None
    cost_center: Optional[str] = None
    department: Optional[str] = None
    warehouse: Optional[str] = None
    delivery_date: Optional[str] = None
    qty_total_po: float = Field(0, description="Quantity already covered by purchase orders")
    ordered_qty: Optional[float] = Field(None, description="Legacy, prefer qty_total_po")
    received_qty: Optional[float] = None
    po_detail: Optional[List[PODetail]] = None
    is_po: Optional[bool] = None

class MaterialRequest(BaseModel):
    name: str = Field(..., description="Unique business key, e.g. MAT-MR-2025-00001")
    status: str = Field(..., description="Draft | Partially Ordered | Pending | ...")
    transaction_date: Optional[str] = None
    required_by: Optional[str] = None
    purpose: Optional[str] = None
    cost_center: Optional[str] = None
    department: Optional[str] = None
    items: List[MaterialRequestItem] = []

# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------

class PaymentTerm(BaseModel):
    description: str
    value: float = 0

class Supplier(BaseModel):
    """Non-ERP supplier registered from the dashboard."""
    id: str = Field(..., description="S-DN-NNNNN")
    nama: str
    alamat_pusat: Optional[str] = None
    kota_pusat: Optional[str] = None
    telp_sales: Optional[str] = None
    email_sales: Optional[str] = None
    telp_finance: Optional[str] = None
    email_finance: Optional[str] = None
    no_npwp: Optional[str] = None
    nik: Optional[str] = None
    alamat_pajak: Optional[str] = None
    payment_terms_template: Optional[str] = None
    rating: Optional[float] = None
    payment_terms: Optional[List[Any]] = None
    categories: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Item(BaseModel):
    id: str = Field(..., description="MID, e.g. MID-0001")
    name: str
    description: Optional[str] = "-"
    brand: Optional[str] = None
    uom: Optional[str] = None
    category: Optional[str] = None
    total_stock: Optional[float] = None
    stock: Optional[Dict[str, float]] = Field(None, description="Per-warehouse stock")

class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    brand: Optional[str] = None
    uom: Optional[str] = None
    category: Optional[str] = None

class TransactionItem(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    qty: float = 0
    rate: float = 0
    uom: Optional[str] = None

class Transaction(BaseModel):
    name: str
    transaction_date: str
    supplier: str
    supplier_name: Optional[str] = None
    status: Optional[str] = None
    items: List[TransactionItem] = []

class Category(BaseModel):
    id: str
    nama: str
    parent: Optional[str] = None
    status_group: Optional[int] = Field(None, description="1 = header (not selectable)")

class Top(Category):
    credit_days: Optional[int] = None
    invoice_portion: Optional[float] = None

class Uom(BaseModel):
    id: str
    name: str

# ---------------------------------------------------------------------
# Dashboard filtering & aggregation
# ---------------------------------------------------------------------

class MRFilterParams(BaseModel):
    """Filters applied conjunctively to material requests."""
    model_config = ConfigDict(populate_by_name=True)

    selected_status: Optional[Union[str, List[str]]] = Field(None, alias="selectedStatus")
    selected_branch: Optional[str] = Field(None, alias="selectedBranch")
    selected_department: Optional[str] = Field(None, alias="selectedDepartment")
    selected_cost_center: Optional[str] = Field(None, alias="selectedCostCenter")
    selected_project: Optional[str] = Field(None, alias="selectedProject")
    selected_type: Optional[str] = Field(None, alias="selectedType")
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    required_start: Optional[str] = None
    required_end: Optional[str] = None

class BranchCount(BaseModel):
    name: str
    count: int

class DepartmentSlice(BaseModel):
    name: str
    count: int
    percent: int
    color: str

class ProjectCount(BaseModel):
    name: str
    count: int

class TypeCount(BaseModel):
    type: str
    count: int

class MRSummary(BaseModel):
    total_mr: int
    draft_count: int
    partially_ordered_count: int
    pending_count: int
    latest_date: Optional[str] = Field(None, description="Earliest transaction_date among matches")
    nearest_required_by: Optional[str] = Field(None, description="Earliest required_by among matches")

class DateBounds(BaseModel):
    min_date: Optional[str] = None
    max_date: Optional[str] = None

class LastPurchase(BaseModel):
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    date: Optional[str] = None

class ItemDemand(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    uom: Optional[str] = None
    asked: float = 0
    ordered: float = 0
    received: float = 0
    shortage: float = 0
    last_purchase: Optional[LastPurchase] = None

class MRDemand(BaseModel):
    name: str
    required_by: Optional[str] = None
    status: Optional[str] = None
    asked: float = 0
    ordered: float = 0

class DemandGroup(BaseModel):
    name: str
    count: int = 0
    asked: float = 0
    ordered: float = 0

class PORef(BaseModel):
    po_name: str = ""
    transaction_date: str = ""
    supplier: str = ""
    qty: float = 0
    uom: str = ""

class MRPORefs(BaseModel):
    mr_name: str
    po_entries: List[PORef]

class ItemDemandDetail(BaseModel):
    """Outstanding demand for one item, broken down per MR and dimension."""
    item_code: str
    material_requests: List[MRDemand]
    projects: List[DemandGroup]
    cost_centers: List[DemandGroup]
    departments: List[DemandGroup]
    purchase_orders: List[MRPORefs]

class ProjectDelivery(BaseModel):
    name: str
    count: int
    delivery_date: Optional[str] = Field(None, description="Next upcoming delivery, else the earliest one")

class DashboardResponse(BaseModel):
    filtered: List[Dict[str, Any]]
    summary: MRSummary
    branches: List[BranchCount]
    branch_total: int
    departments: List[DepartmentSlice]
    department_total: int
    projects: List[ProjectCount]
    types: List[TypeCount]
    date_bounds: DateBounds

# ---------------------------------------------------------------------
# Make PO
# ---------------------------------------------------------------------

class WebhookEntry(BaseModel):
    mr_name: str
    item_code: str

class MakePOResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    matched_count: int = Field(..., alias="matchedCount")
    modified_count: int = Field(..., alias="modifiedCount")
    webhook_sent_for: List[WebhookEntry] = Field(default_factory=list, alias="webhookSentFor")

# ---------------------------------------------------------------------
# Purchase history
# ---------------------------------------------------------------------

class SupplierItem(BaseModel):
    key: str
    item_code: Optional[str] = None
    item_name: Optional[str] = None
    uom: Optional[str] = None
    last_price: float = 0
    last_purchase_at: Optional[str] = None
    qty: Optional[float] = None
    transaction_name: Optional[str] = None

class SupplierOffer(BaseModel):
    supplier_id: str
    supplier_name: Optional[str] = None
    last_transaction: Optional[str] = None
    uom: Optional[str] = None
    rate_per_unit: float = 0
    qty: float = 0
    grand_total: float = 0
    rating: float = 0

class PriceStats(BaseModel):
    cheapest: float
    median: float
    highest: float
    count: int

class ItemComparison(BaseModel):
    item: Dict[str, Any]
    suppliers: List[SupplierOffer]
    stats: Optional[PriceStats] = None

class Region(BaseModel):
    code: str
    name: str
    region: Optional[str] = None
