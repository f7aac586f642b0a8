"""
Test BOQ budgeted price rollup

Pure functions only: nodes are plain dicts, nothing touches the database.
"""
import pytest

from services.pricing import (
    BOQTotals,
    budgeted_per_unit,
    calc_main_item_total,
    calc_sub_sub_item_budgeted,
    calculate_boq_totals,
    recompute_main_item,
    recompute_sub_item,
    recompute_tree,
)


def test_main_item_rollup_from_sub_items():
    """Two sub-items (200 + 50 per unit) under a main item of qty 10"""
    main_item = {'qty': 10, 'budgeted_price': 0}
    sub_items = [
        {'id': 'a', 'qty_per_unit': 2, 'unit_price': 100},
        {'id': 'b', 'qty_per_unit': 1, 'unit_price': 50},
    ]

    total = recompute_tree(main_item, sub_items, {})

    assert sub_items[0]['budgeted_price'] == 200
    assert sub_items[1]['budgeted_price'] == 50
    assert total == 2500
    assert main_item['budgeted_price'] == 2500
    assert budgeted_per_unit(main_item['budgeted_price'], main_item['qty']) == 250


def test_sub_item_sums_sub_sub_items_and_ignores_own_unit_price():
    sub_item = {'qty_per_unit': 5, 'unit_price': 999, 'budgeted_price': 4995}
    children = [
        {'qty_per_unit': 3, 'unit_price': 20, 'budgeted_price': 0},
        {'qty_per_unit': 1, 'unit_price': 40, 'budgeted_price': 0},
    ]

    assert recompute_sub_item(sub_item, children) == 100
    assert sub_item['budgeted_price'] == 100
    assert [c['budgeted_price'] for c in children] == [60, 40]


def test_sub_item_without_children_uses_own_price():
    sub_item = {'qty_per_unit': 2.5, 'unit_price': 4}
    assert recompute_sub_item(sub_item, []) == 10


def test_boq_totals_and_margin():
    main_items = [
        {'qty': 10, 'quoted_price': 100, 'budgeted_price': 900},
        {'qty': 5, 'quoted_price': 200, 'budgeted_price': 900},
    ]

    totals = calculate_boq_totals(main_items)

    assert totals.total_quoted == 2000
    assert totals.total_budgeted == 1800
    assert totals.margin == 200
    assert totals.margin_percent == pytest.approx(10.0)
    assert totals.is_positive_margin
    assert not totals.is_over_budget


def test_margin_percent_is_zero_when_nothing_quoted():
    totals = calculate_boq_totals([{'qty': 0, 'quoted_price': 100, 'budgeted_price': 50}])

    assert totals.total_quoted == 0
    assert totals.margin_percent == 0.0
    assert totals.margin == -50
    assert totals.is_over_budget


def test_empty_boq_totals():
    assert calculate_boq_totals([]) == BOQTotals()


def test_childless_main_item_keeps_manual_total():
    main_item = {'qty': 4, 'budgeted_price': 1234.5}

    assert recompute_main_item(main_item, []) == 1234.5
    assert main_item['budgeted_price'] == 1234.5


def test_recompute_is_idempotent():
    main_item = {'qty': 3}
    sub_items = [{'id': 1, 'qty_per_unit': 2, 'unit_price': 7}, {'id': 2, 'qty_per_unit': 1, 'unit_price': 1}]
    sub_subs = {1: [{'qty_per_unit': 2, 'unit_price': 5}, {'qty_per_unit': 1, 'unit_price': 0.5}]}

    first = recompute_tree(main_item, sub_items, sub_subs)
    snapshot = [dict(s) for s in sub_items]
    second = recompute_tree(main_item, sub_items, sub_subs)

    assert first == second == pytest.approx((10.5 + 1) * 3)
    assert sub_items == snapshot


def test_recompute_works_on_objects():
    class Node:
        def __init__(self, **kwargs):
            self.__dict__.update(kwargs)

    main_item = Node(id=1, qty=2, budgeted_price=0)
    sub_item = Node(id=5, qty_per_unit=1, unit_price=0, budgeted_price=0)
    leaf = Node(qty_per_unit=4, unit_price=2.5, budgeted_price=0)

    assert recompute_tree(main_item, [sub_item], {5: [leaf]}) == 20
    assert leaf.budgeted_price == 10
    assert sub_item.budgeted_price == 10


def test_basic_calculations():
    assert calc_sub_sub_item_budgeted(3, 20) == 60
    assert calc_sub_sub_item_budgeted(None, 20) == 0
    assert calc_main_item_total(250, 10) == 2500
    assert budgeted_per_unit(900, 0) == 900
