"""
BOQ View Service
Read-only projections of a BOQ tree for pages and exports.

- build_rows:          flat ordered rows ("1", "1.1", "1.1.1") for Excel / PDF
- build_export_data:   rows + header + totals for one BOQ
- build_boq_view:      formatted nested data for the read-only page
- build_boq_edit:      raw values for the edit form (main item budget shown per unit)
- build_boq_list:      per-BOQ totals and grand totals for the list page
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from config.constants import GST_OPTIONS, UOM_OPTIONS
from services.boq_repository import BOQRepository, boq_repository
from services.pricing import BOQTotals, budgeted_per_unit, calculate_boq_totals
from utils.formatting import format_date, format_gst, format_inr, format_percent, format_qty
from utils.validators import NotFoundError


@dataclass
class ExportRow:
    """One row of the flattened BOQ. level 0 = main item, 1 = sub-item, 2 = sub-sub-item."""
    level: int
    index: str
    description: str
    qty: float
    uom: str
    quoted_price: float
    budgeted_price: float
    hsn_code: str
    gst_percent: float


@dataclass
class ExportData:
    title: str
    reference_number: str
    created_date: str
    rows: List[ExportRow] = field(default_factory=list)
    totals: BOQTotals = field(default_factory=BOQTotals)


@dataclass
class BOQTree:
    """A BOQ header with its children grouped by parent id"""
    boq: Any
    main_items: List[Any]
    sub_items_by_main: Dict[Any, List[Any]]
    sub_sub_items_by_sub: Dict[Any, List[Any]]


def load_tree(repository: BOQRepository, boq_id) -> BOQTree:
    boq = repository.boqs.get(boq_id)
    if boq is None:
        raise NotFoundError("BOQ", boq_id)

    main_items = repository.main_items.list(boq.id)
    sub_items_by_main = {}
    sub_sub_items_by_sub = {}
    for main_item in main_items:
        sub_items = repository.sub_items.list(main_item.id)
        sub_items_by_main[main_item.id] = sub_items
        for sub_item in sub_items:
            sub_sub_items_by_sub[sub_item.id] = repository.sub_sub_items.list(sub_item.id)

    return BOQTree(boq, main_items, sub_items_by_main, sub_sub_items_by_sub)


def build_rows(main_items, sub_items_by_main: Mapping, sub_sub_items_by_sub: Mapping) -> Iterator[ExportRow]:
    """
    Flatten the tree depth-first in sort order.

    Main item rows carry qty, quoted price and the per-unit budget; line item
    rows carry qty_per_unit, unit price and their own budget.
    """
    for i, main_item in enumerate(main_items, start=1):
        yield ExportRow(
            level=0,
            index=str(i),
            description=main_item.description or '',
            qty=main_item.qty or 0.0,
            uom=main_item.uom or '',
            quoted_price=main_item.quoted_price or 0.0,
            budgeted_price=budgeted_per_unit(main_item.budgeted_price or 0.0, main_item.qty),
            hsn_code=main_item.hsn_code or '',
            gst_percent=main_item.gst_percent or 0.0,
        )

        for j, sub_item in enumerate(sub_items_by_main.get(main_item.id, []), start=1):
            yield _line_row(1, f"{i}.{j}", sub_item)

            for k, sub_sub_item in enumerate(sub_sub_items_by_sub.get(sub_item.id, []), start=1):
                yield _line_row(2, f"{i}.{j}.{k}", sub_sub_item)


def _line_row(level: int, index: str, item) -> ExportRow:
    return ExportRow(
        level=level,
        index=index,
        description=item.description or '',
        qty=item.qty_per_unit or 0.0,
        uom=item.uom or '',
        quoted_price=item.unit_price or 0.0,
        budgeted_price=item.budgeted_price or 0.0,
        hsn_code=item.hsn_code or '',
        gst_percent=item.gst_percent or 0.0,
    )


def build_export_data(boq_id, repository: BOQRepository = None) -> ExportData:
    tree = load_tree(repository or boq_repository, boq_id)
    return ExportData(
        title=tree.boq.title,
        reference_number=tree.boq.reference_number or '',
        created_date=format_date(tree.boq.created_at),
        rows=list(build_rows(tree.main_items, tree.sub_items_by_main, tree.sub_sub_items_by_sub)),
        totals=calculate_boq_totals(tree.main_items),
    )


def format_totals(totals: BOQTotals) -> Dict[str, Any]:
    return {
        'total_quoted': format_inr(totals.total_quoted),
        'total_budgeted': format_inr(totals.total_budgeted),
        'margin': format_inr(totals.margin),
        'margin_percent': format_percent(totals.margin_percent),
        'is_positive_margin': totals.is_positive_margin,
    }


def _line_item_view(item) -> Dict[str, Any]:
    return {
        'id': item.id,
        'type': item.type,
        'description': item.description,
        'qty_per_unit': format_qty(item.qty_per_unit),
        'uom': item.uom,
        'unit_price': format_inr(item.unit_price),
        'budgeted_price': format_inr(item.budgeted_price),
        'hsn_code': item.hsn_code or '',
        'gst_percent': format_gst(item.gst_percent),
    }


def build_boq_view(boq_id, repository: BOQRepository = None) -> Dict[str, Any]:
    """Formatted data for the read-only BOQ page"""
    tree = load_tree(repository or boq_repository, boq_id)

    main_items = []
    for i, main_item in enumerate(tree.main_items, start=1):
        sub_items = []
        for sub_item in tree.sub_items_by_main.get(main_item.id, []):
            view = _line_item_view(sub_item)
            view['sub_sub_items'] = [
                _line_item_view(ssi) for ssi in tree.sub_sub_items_by_sub.get(sub_item.id, [])
            ]
            sub_items.append(view)

        main_items.append({
            'id': main_item.id,
            'index': i,
            'description': main_item.description,
            'qty': format_qty(main_item.qty),
            'uom': main_item.uom,
            'quoted_price': format_inr(main_item.quoted_price),
            'budgeted_price': format_inr(budgeted_per_unit(main_item.budgeted_price, main_item.qty)),
            'hsn_code': main_item.hsn_code or '',
            'gst_percent': format_gst(main_item.gst_percent),
            'sub_items': sub_items,
        })

    data = {
        'id': tree.boq.id,
        'title': tree.boq.title,
        'reference_number': tree.boq.reference_number or '',
        'created_date': format_date(tree.boq.created_at),
        'main_items': main_items,
    }
    data.update(format_totals(calculate_boq_totals(tree.main_items)))
    return data


def _line_item_edit(item) -> Dict[str, Any]:
    return {
        'id': item.id,
        'type': item.type,
        'description': item.description,
        'qty_per_unit': item.qty_per_unit,
        'uom': item.uom,
        'unit_price': item.unit_price,
        'budgeted_price': item.budgeted_price,
        'hsn_code': item.hsn_code or '',
        'gst_percent': item.gst_percent,
    }


def build_sub_items_edit(main_item_id, repository: BOQRepository = None) -> List[Dict[str, Any]]:
    """Sub-items (with their sub-sub-items) of one main item, for lazy accordion expansion"""
    repository = repository or boq_repository
    sub_items = []
    for sub_item in repository.sub_items.list(main_item_id):
        edit = _line_item_edit(sub_item)
        edit['sub_sub_items'] = [_line_item_edit(ssi) for ssi in repository.sub_sub_items.list(sub_item.id)]
        sub_items.append(edit)
    return sub_items


def build_boq_edit(boq_id, repository: BOQRepository = None,
                   open_main_item_ids: Optional[Set] = None,
                   open_sub_item_ids: Optional[Set] = None) -> Dict[str, Any]:
    """Raw values for the edit form. open_* ids control which accordions render expanded."""
    tree = load_tree(repository or boq_repository, boq_id)

    main_items = []
    for i, main_item in enumerate(tree.main_items, start=1):
        sub_items = []
        for sub_item in tree.sub_items_by_main.get(main_item.id, []):
            edit = _line_item_edit(sub_item)
            edit['sub_sub_items'] = [
                _line_item_edit(ssi) for ssi in tree.sub_sub_items_by_sub.get(sub_item.id, [])
            ]
            sub_items.append(edit)

        main_items.append({
            'id': main_item.id,
            'index': i,
            'description': main_item.description,
            'qty': main_item.qty,
            'uom': main_item.uom,
            'quoted_price': main_item.quoted_price,
            'budgeted_price': budgeted_per_unit(main_item.budgeted_price, main_item.qty),
            'hsn_code': main_item.hsn_code or '',
            'gst_percent': main_item.gst_percent,
            'sub_items': sub_items,
        })

    data = {
        'id': tree.boq.id,
        'title': tree.boq.title,
        'reference_number': tree.boq.reference_number or '',
        'created_date': format_date(tree.boq.created_at),
        'main_items': main_items,
        'uom_options': UOM_OPTIONS,
        'gst_options': GST_OPTIONS,
        'open_main_item_ids': set(open_main_item_ids or ()),
        'open_sub_item_ids': set(open_sub_item_ids or ()),
    }
    data.update(format_totals(calculate_boq_totals(tree.main_items)))
    return data


def build_boq_list(repository: BOQRepository = None) -> Dict[str, Any]:
    """Every BOQ with its own totals, plus grand totals across all of them"""
    repository = repository or boq_repository

    items = []
    grand_quoted = 0.0
    grand_budgeted = 0.0
    boqs = repository.boqs.list()
    for boq in boqs:
        main_items = repository.main_items.list(boq.id)
        totals = calculate_boq_totals(main_items)
        grand_quoted += totals.total_quoted
        grand_budgeted += totals.total_budgeted

        items.append({
            'id': boq.id,
            'title': boq.title,
            'reference_number': boq.reference_number or '',
            'created_date': format_date(boq.created_at),
            'total_quoted': format_inr(totals.total_quoted),
            'total_budgeted': format_inr(totals.total_budgeted),
            'item_count': len(main_items),
            'is_over_budget': totals.is_over_budget,
        })

    margin = grand_quoted - grand_budgeted
    return {
        'items': items,
        'total_boqs': len(boqs),
        'sum_quoted': format_inr(grand_quoted),
        'sum_budgeted': format_inr(grand_budgeted),
        'margin': format_inr(margin),
        'is_positive_margin': margin >= 0,
    }
