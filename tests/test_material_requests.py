"""
Tests for material-request filtering and dashboard aggregations.
"""

import copy
import itertools
from datetime import date

import pytest

from material_requests import (
    branch_for_cost_center,
    build_dashboard,
    classify_project,
    date_bounds,
    department_summary,
    filter_material_requests,
    is_outstanding,
    item_demand,
    item_demand_detail,
    map_department,
    mr_type,
    project_deliveries,
    project_summary,
    shortage,
    summarize,
    type_summary,
    branch_summary,
)
from reference_data import MISC_TYPE, UNASSIGNED, ReferenceTables
from schemas import MRFilterParams


def names(mrs):
    return [mr["name"] for mr in mrs]


class TestBranchMapping:
    """Cost center to branch resolution."""

    @pytest.mark.parametrize("cost_center,expected", [
        ("SBY-PG - IDS", "SURABAYA-PG"),
        ("SBY-PG", "SURABAYA-PG"),
        ("SBY-PGX - IDS", "SURABAYA"),
        ("SBY-PG2", "SURABAYA"),
        ("sby-pg", "SURABAYA-PG"),
        ("SBY-001 - IDS", "SURABAYA"),
        ("JKT-001 - IDS", "JAKARTA"),
        ("  jkt-001", "JAKARTA"),
        ("", UNASSIGNED),
        (None, UNASSIGNED),
        ("XYZ-1", "XYZ"),
    ])
    def test_cost_center(self, cost_center, expected):
        assert branch_for_cost_center(cost_center) == expected

    def test_custom_tables(self):
        tables = ReferenceTables(branches={"ABC": "ALPHA"}, branch_overrides={})
        assert branch_for_cost_center("abc-1", tables) == "ALPHA"
        assert branch_for_cost_center("SBY-PG", tables) == "SBY"


class TestDimensions:
    """Department mapping and project type classification."""

    def test_department_mapping(self):
        assert map_department("service blower - ids") == "BLOWER"
        assert map_department("UNKNOWN DEPT") == "UNKNOWN DEPT"
        assert map_department("") == ""
        assert map_department(None) == ""

    @pytest.mark.parametrize("project,expected", [
        ("SO-2025-001", "Project"),
        ("sow-12", "Project"),
        ("PK/001", "Project"),
        ("OPERATIONAL SBY", "Operational"),
        ("STOCK", "Stock"),
        ("STOCK JKT", None),
        ("", None),
    ])
    def test_classify_project(self, project, expected):
        assert classify_project(project) == expected

    def test_type_priority(self):
        mr = {"items": [{"project": "STOCK"}, {"project": "OPERATIONAL"}, {"project": "SO-1"}]}
        assert mr_type(mr) == "Project"

    def test_type_fallback(self):
        assert mr_type({"items": [{"project": "random"}]}) == MISC_TYPE
        assert mr_type({}) == MISC_TYPE


class TestQuantities:
    """Outstanding quantity rules."""

    @pytest.mark.parametrize("item,expected", [
        ({"qty": 5}, True),
        ({"qty": 5, "qty_total_po": 5}, False),
        ({"qty": 5, "qty_total_po": 6}, False),
        ({"qty": None}, False),
        ({"qty": "3", "qty_total_po": "1"}, True),
        ({"qty": 3, "qty_total_po": None}, True),
    ])
    def test_is_outstanding(self, item, expected):
        assert is_outstanding(item) is expected

    def test_shortage_never_negative(self):
        assert shortage({"qty": 2, "qty_total_po": 5}) == 0
        assert shortage({"qty": 10, "qty_total_po": 4}) == 6


class TestFilter:
    """Conjunction of the dashboard filters."""

    def test_no_filters_returns_everything(self, sample_mrs):
        assert names(filter_material_requests(sample_mrs)) == ["MR-001", "MR-002", "MR-003", "MR-004"]

    def test_status_case_insensitive(self, sample_mrs):
        params = MRFilterParams(selected_status=["DRAFT"])
        assert names(filter_material_requests(sample_mrs, params)) == ["MR-001", "MR-004"]

    def test_status_single_string(self, sample_mrs):
        params = MRFilterParams(selected_status="pending")
        assert names(filter_material_requests(sample_mrs, params)) == ["MR-003"]

    def test_required_range_excludes_missing_dates(self, sample_mrs):
        params = MRFilterParams(required_start="2025-01-01", required_end="2025-02-28")
        assert names(filter_material_requests(sample_mrs, params)) == ["MR-001", "MR-002"]

    def test_end_date_covers_whole_day(self, sample_mrs):
        params = MRFilterParams(start_date="2025-01-15", end_date="2025-01-15")
        assert names(filter_material_requests(sample_mrs, params)) == ["MR-002"]

    def test_unparseable_transaction_date_excluded(self, sample_mrs):
        params = MRFilterParams(start_date="2000-01-01")
        assert "MR-004" not in names(filter_material_requests(sample_mrs, params))

    def test_item_substring_filters(self, sample_mrs):
        assert names(filter_material_requests(sample_mrs, MRFilterParams(selected_department="rewinding"))) == ["MR-002"]
        assert names(filter_material_requests(sample_mrs, MRFilterParams(selected_project="so-2025"))) == ["MR-001"]
        assert names(filter_material_requests(sample_mrs, MRFilterParams(selected_cost_center="xyz"))) == ["MR-004"]

    def test_branch_and_type(self, sample_mrs):
        assert names(filter_material_requests(sample_mrs, MRFilterParams(selected_branch="SURABAYA-PG"))) == ["MR-002"]
        assert names(filter_material_requests(sample_mrs, MRFilterParams(selected_type=MISC_TYPE))) == ["MR-004"]

    def test_camel_case_aliases(self, sample_mrs):
        params = MRFilterParams(selectedBranch="JAKARTA")
        assert names(filter_material_requests(sample_mrs, params)) == ["MR-001"]

    def test_combined_equals_intersection(self, sample_mrs):
        singles = [
            {"selected_status": ["draft", "partially ordered"]},
            {"selected_project": "SO"},
            {"required_start": "2025-01-01"},
            {"selected_department": "blower"},
        ]
        for a, b in itertools.combinations(singles, 2):
            both = names(filter_material_requests(sample_mrs, MRFilterParams(**a, **b)))
            left = set(names(filter_material_requests(sample_mrs, MRFilterParams(**a))))
            right = set(names(filter_material_requests(sample_mrs, MRFilterParams(**b))))
            assert set(both) == left & right

    def test_skips_non_dict_documents(self, sample_mrs):
        assert names(filter_material_requests(sample_mrs + [None, "x"])) == names(sample_mrs)


class TestSummaries:
    """Chart aggregations."""

    def test_branch_summary(self, sample_mrs):
        data, total = branch_summary(sample_mrs)
        counts = {b.name: b.count for b in data}
        assert total == 4
        assert counts["JAKARTA"] == 1
        assert counts["SURABAYA-PG"] == 1
        assert counts[UNASSIGNED] == 1
        assert counts["XYZ"] == 1
        assert counts["BANDUNG"] == 0
        assert [b.count for b in data] == sorted((b.count for b in data), reverse=True)

    def test_department_counted_once_per_mr(self, sample_mrs):
        data, total = department_summary(sample_mrs)
        counts = {d.name: d.count for d in data}
        assert counts == {"BLOWER": 1, "REWINDING": 1, "COMPRESSOR": 1}
        assert total == 3
        assert [d.percent for d in data] == [33, 33, 33]
        assert data[0].color == ReferenceTables().palette[0]

    def test_department_percent_rounding(self):
        mrs = [
            {"items": [{"department": "A"}]},
            {"items": [{"department": "A"}]},
            {"items": [{"department": "B"}]},
        ]
        data, _ = department_summary(mrs)
        assert [(d.name, d.percent) for d in data] == [("A", 67), ("B", 33)]

    def test_project_summary_counts_lines(self, sample_mrs):
        data = project_summary(sample_mrs)
        assert data[0].name == "SO-2025-001"
        assert data[0].count == 2
        assert {p.name for p in data} == {"SO-2025-001", "OPERATIONAL SBY", "STOCK"}

    def test_type_summary(self, sample_mrs):
        counts = {t.type: t.count for t in type_summary(sample_mrs)}
        assert counts == {"Project": 1, "Operational": 1, "Stock": 1, MISC_TYPE: 1}

    def test_summarize(self, sample_mrs):
        summary = summarize(sample_mrs)
        assert summary.total_mr == 4
        assert summary.draft_count == 2
        assert summary.partially_ordered_count == 1
        assert summary.pending_count == 1
        assert summary.latest_date == "2025-01-10"
        assert summary.nearest_required_by == "2025-01-20"

    def test_summarize_empty(self):
        summary = summarize([])
        assert summary.total_mr == 0
        assert summary.latest_date is None
        assert summary.nearest_required_by is None

    def test_date_bounds(self, sample_mrs):
        bounds = date_bounds(sample_mrs)
        assert bounds.min_date == "2025-01-20"
        assert bounds.max_date == "2025-03-01"
        tx_bounds = date_bounds(sample_mrs, date_field="transaction_date")
        assert tx_bounds.min_date == "2025-01-10"
        assert tx_bounds.max_date == "2025-02-03"


class TestItemDemand:
    """Requested vs. ordered quantities per item."""

    def test_defaults_to_draft_and_partially_ordered(self, sample_mrs):
        rows = {r.item_code: r for r in item_demand(sample_mrs)}
        assert list(rows) == ["MID-1", "MID-2", "MID-4"]
        assert rows["MID-1"].asked == 16
        assert rows["MID-1"].shortage == 14
        assert rows["MID-1"].ordered == 2
        assert rows["MID-1"].received == 1
        assert rows["MID-4"].shortage == 1

    def test_last_purchase_and_supplier_filter(self, sample_mrs):
        txs = [
            {"transaction_date": "2024-05-01", "supplier": "S-DN-00001", "supplier_name": "Old",
             "items": [{"item_code": "MID-1"}]},
            {"transaction_date": "2024-06-01", "supplier": "S-DN-00002", "supplier_name": "New",
             "items": [{"item_code": "MID-1"}]},
        ]
        rows = item_demand(sample_mrs, transactions=txs, supplier_id="S-DN-00002")
        assert [r.item_code for r in rows] == ["MID-1"]
        assert rows[0].last_purchase.supplier_name == "New"

    def test_search_and_only_needed(self, sample_mrs):
        catalog = [{"id": "MID-9", "name": "Unused"}]
        rows = item_demand(sample_mrs, items=catalog, only_needed=False, search_name="unused")
        assert [r.item_code for r in rows] == ["MID-9"]
        assert rows[0].asked == 0
        assert item_demand(sample_mrs, search_id="mid-2")[0].item_code == "MID-2"


class TestDashboard:
    """Combined dashboard response."""

    def test_facets_ignore_own_filter(self, sample_mrs):
        params = MRFilterParams(selected_branch="JAKARTA")
        dash = build_dashboard(sample_mrs, params)
        assert names(dash.filtered) == ["MR-001"]
        assert dash.branch_total == 4
        assert dash.summary.total_mr == 1
        types = {t.type: t.count for t in dash.types}
        assert types["Project"] == 1
        assert types["Operational"] == 0

    def test_type_facet_keeps_all_types(self, sample_mrs):
        dash = build_dashboard(sample_mrs, MRFilterParams(selected_type="Stock"))
        types = {t.type: t.count for t in dash.types}
        assert types == {"Project": 1, "Operational": 1, "Stock": 1, MISC_TYPE: 1}
        assert names(dash.filtered) == ["MR-003"]

    def test_date_bounds_ignore_date_filters(self, sample_mrs):
        params = MRFilterParams(required_start="2025-02-15")
        dash = build_dashboard(sample_mrs, params)
        assert names(dash.filtered) == ["MR-004"]
        assert dash.date_bounds.min_date == "2025-01-20"

    def test_inputs_not_mutated(self, sample_mrs):
        before = copy.deepcopy(sample_mrs)
        build_dashboard(sample_mrs, MRFilterParams(selected_status=["draft"]))
        item_demand(sample_mrs)
        assert sample_mrs == before


class TestItemDemandDetail:
    """Per-item breakdown of outstanding lines and linked POs."""

    @pytest.fixture
    def mrs(self):
        return [
            {
                "name": "MR-A", "status": "Draft", "required_by": "2025-02-01",
                "items": [
                    {"item_code": "MID-1", "qty": 10, "qty_total_po": 4, "project": "P1",
                     "cost_center": "CC1", "department": "D1",
                     "po_detail": [{"po_name": "PO-1", "transaction_date": "2025-01-05",
                                    "supplier": "S-1", "qty": 4, "uom": "PCS"}]},
                    {"item_code": "mid-1", "qty": 2, "project": "P1", "cost_center": "CC2", "department": "D1"},
                    {"item_code": "MID-2", "qty": 5, "project": "P9"},
                ],
            },
            {
                "name": "MR-B", "status": "Pending",
                "items": [
                    {"item_code": "MID-1", "qty": 3, "qty_total_po": 3,
                     "po_detail": [{"name": "PO-2", "date": "2025-01-09", "qty": "3"}]},
                ],
            },
            {
                "name": "MR-C", "status": "Completed",
                "items": [{"item_code": "MID-1", "qty": 5, "project": "P1"}],
            },
        ]

    def test_outstanding_lines_per_mr(self, mrs):
        detail = item_demand_detail(mrs, "MID-1")
        assert [(m.name, m.asked, m.ordered) for m in detail.material_requests] == [("MR-A", 12, 4)]
        assert detail.material_requests[0].required_by == "2025-02-01"
        assert detail.material_requests[0].status == "Draft"

    def test_groups(self, mrs):
        detail = item_demand_detail(mrs, "MID-1")
        assert [(g.name, g.count, g.asked, g.ordered) for g in detail.projects] == [("P1", 2, 12, 4)]
        assert [(g.name, g.count, g.asked) for g in detail.cost_centers] == [("CC1", 1, 10), ("CC2", 1, 2)]
        assert [(g.name, g.count) for g in detail.departments] == [("D1", 2)]

    def test_po_references_include_finished_lines(self, mrs):
        detail = item_demand_detail(mrs, "mid-1")
        refs = {r.mr_name: r.po_entries for r in detail.purchase_orders}
        assert list(refs) == ["MR-A", "MR-B"]
        assert refs["MR-A"][0].model_dump() == {
            "po_name": "PO-1", "transaction_date": "2025-01-05", "supplier": "S-1", "qty": 4, "uom": "PCS",
        }
        assert refs["MR-B"][0].po_name == "PO-2"
        assert refs["MR-B"][0].transaction_date == "2025-01-09"
        assert refs["MR-B"][0].qty == 3

    def test_unknown_item(self, mrs):
        detail = item_demand_detail(mrs, "MID-404")
        assert detail.material_requests == []
        assert detail.purchase_orders == []


class TestProjectDeliveries:
    """Project table with the next delivery date."""

    @pytest.fixture
    def mrs(self):
        return [
            {"name": "MR-1", "status": "Draft", "items": [
                {"project": "P1", "delivery_date": "2025-01-10"},
                {"project": "P1", "delivery_date": "2025-01-20"},
                {"project": "P2", "delivery_date": "2025-01-05"},
                {"project": "P3"},
            ]},
            {"name": "MR-2", "status": "Draft", "items": [
                {"project": "P2", "delivery_date": "bad"},
                {"project": "P3", "delivery_date": "2025-01-30T08:00:00"},
                {"project": "P4"},
                {"project": " "},
            ]},
        ]

    def test_next_upcoming_else_earliest(self, mrs):
        rows = project_deliveries(mrs, today=date(2025, 1, 15))
        assert [(r.name, r.count, r.delivery_date) for r in rows] == [
            ("P2", 2, "2025-01-05"),
            ("P1", 2, "2025-01-20"),
            ("P3", 2, "2025-01-30"),
            ("P4", 1, None),
        ]

    def test_respects_filters(self, mrs):
        rows = project_deliveries(mrs, MRFilterParams(selected_project="P4"), today=date(2025, 1, 15))
        assert {r.name for r in rows} == {"P2", "P3", "P4"}
        assert all(r.count == 1 for r in rows)
