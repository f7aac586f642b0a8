"""
BOQ Pricing Service
Budgeted price rollup across the Main Item -> Sub-Item -> Sub-Sub-Item tree.

Rules:
- Sub-sub-item:  budgeted = qty_per_unit * unit_price (always, it is a leaf)
- Sub-item:      budgeted = SUM(sub-sub-items.budgeted), or qty_per_unit * unit_price when it has none
- Main item:     budgeted = SUM(sub-items.budgeted) * qty; a childless main item keeps
                 its manually entered total and is never recomputed
- BOQ totals:    quoted = SUM(qty * quoted_price), budgeted = SUM(main_item.budgeted)

Everything here is pure: nodes may be ORM models or plain dicts and nothing
is persisted. The only side effect is assigning budgeted_price on the nodes
passed in.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping


@dataclass
class BOQTotals:
    """Header-level money figures for one BOQ"""
    total_quoted: float = 0.0
    total_budgeted: float = 0.0
    margin: float = 0.0
    margin_percent: float = 0.0

    @property
    def is_positive_margin(self) -> bool:
        return self.margin >= 0

    @property
    def is_over_budget(self) -> bool:
        return self.total_budgeted > self.total_quoted


def _get(node: Any, field: str) -> float:
    if isinstance(node, Mapping):
        value = node.get(field)
    else:
        value = getattr(node, field, None)
    return float(value or 0.0)


def _set(node: Any, field: str, value: float) -> None:
    if isinstance(node, dict):
        node[field] = value
    else:
        setattr(node, field, value)


def calc_sub_sub_item_budgeted(qty_per_unit: float, unit_price: float) -> float:
    return (qty_per_unit or 0.0) * (unit_price or 0.0)


def calc_main_item_total(per_unit_budgeted: float, qty: float) -> float:
    return (per_unit_budgeted or 0.0) * (qty or 0.0)


def budgeted_per_unit(total_budgeted: float, qty: float) -> float:
    """Per-unit figure shown on a main item row. A zero qty shows the raw total."""
    if not qty:
        return total_budgeted or 0.0
    return total_budgeted / qty


def recompute_sub_sub_item(sub_sub_item: Any) -> float:
    budgeted = calc_sub_sub_item_budgeted(
        _get(sub_sub_item, 'qty_per_unit'), _get(sub_sub_item, 'unit_price')
    )
    _set(sub_sub_item, 'budgeted_price', budgeted)
    return budgeted


def recompute_sub_item(sub_item: Any, children: Iterable[Any]) -> float:
    """
    Recompute a sub-item from its sub-sub-items.

    Each child is recomputed first. With no children the sub-item falls back
    to its own qty_per_unit * unit_price.
    """
    children = list(children or [])
    if children:
        budgeted = sum(recompute_sub_sub_item(child) for child in children)
    else:
        budgeted = calc_sub_sub_item_budgeted(
            _get(sub_item, 'qty_per_unit'), _get(sub_item, 'unit_price')
        )
    _set(sub_item, 'budgeted_price', budgeted)
    return budgeted


def recompute_main_item(main_item: Any, children: Iterable[Any]) -> float:
    """
    Recompute a main item's total budgeted price from its sub-items.

    Sub-item prices are taken as stored (callers recompute them first when
    needed). A main item without sub-items keeps whatever total was entered
    manually; the qty multiplication for that value happened when it was
    entered.
    """
    children = list(children or [])
    if not children:
        return _get(main_item, 'budgeted_price')

    per_unit = sum(_get(child, 'budgeted_price') for child in children)
    budgeted = calc_main_item_total(per_unit, _get(main_item, 'qty'))
    _set(main_item, 'budgeted_price', budgeted)
    return budgeted


def calculate_boq_totals(main_items: Iterable[Any]) -> BOQTotals:
    totals = BOQTotals()
    for item in main_items or []:
        totals.total_quoted += _get(item, 'quoted_price') * _get(item, 'qty')
        # Already quantity-scaled, so no qty multiplication here
        totals.total_budgeted += _get(item, 'budgeted_price')

    totals.margin = totals.total_quoted - totals.total_budgeted
    if totals.total_quoted != 0:
        totals.margin_percent = (totals.margin / totals.total_quoted) * 100
    else:
        totals.margin_percent = 0.0
    return totals


def recompute_tree(main_item: Any, sub_items: List[Any], sub_sub_items_by_sub: Mapping[Any, List[Any]]) -> float:
    """
    Full bottom-up recompute of one main item subtree.

    sub_sub_items_by_sub is keyed by sub-item id (or by the sub-item object
    itself when ids are not assigned yet).
    """
    for sub_item in sub_items:
        key = _node_key(sub_item)
        recompute_sub_item(sub_item, sub_sub_items_by_sub.get(key, []))
    return recompute_main_item(main_item, sub_items)


def _node_key(node: Any):
    if isinstance(node, Mapping):
        return node.get('id')
    node_id = getattr(node, 'id', None)
    return node_id if node_id is not None else node
