"""
Test BOQ mutations

Create / patch / delete through BOQMutationService against an in-memory
database, checking that every ancestor is repriced and nothing else moves.
"""
import pytest

from config.constants import BOQLevel
from config.db import db
from models.boq import MainItem, SubItem, SubSubItem
from utils.validators import NotFoundError, ValidationError


def _reload(model, record_id):
    db.session.expire_all()
    return db.session.get(model, record_id)


# ==================== DELETE ====================

def test_delete_sub_sub_item_reprices_ancestors_only(service, make_boq, add_main, add_sub, add_sub_sub):
    """Deleting a leaf drops its sub-item by exactly its value and rescales the main item"""
    boq = make_boq()
    main_item = add_main(boq, qty=2, budgeted_price=200)
    sub_item = add_sub(main_item, budgeted_price=100)
    kept_id = add_sub_sub(sub_item, sort_order=1, qty_per_unit=3, unit_price=20).id
    deleted_id = add_sub_sub(sub_item, sort_order=2, qty_per_unit=1, unit_price=40).id
    sibling_id = add_main(boq, sort_order=2, qty=1, budgeted_price=777).id
    main_item_id, sub_item_id = main_item.id, sub_item.id

    result = service.delete_node(BOQLevel.SUB_SUB_ITEM, deleted_id)

    assert result.sub_item_id == sub_item_id
    assert result.main_item_id == main_item_id
    assert _reload(SubSubItem, deleted_id) is None
    assert _reload(SubSubItem, kept_id) is not None
    assert _reload(SubItem, sub_item_id).budgeted_price == 60
    assert _reload(MainItem, main_item_id).budgeted_price == 120
    assert _reload(MainItem, sibling_id).budgeted_price == 777


def test_delete_last_sub_sub_item_falls_back_to_sub_item_price(service, make_boq, add_main, add_sub, add_sub_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=5)
    sub_item = add_sub(main_item, qty_per_unit=2, unit_price=15, budgeted_price=40)
    only_child_id = add_sub_sub(sub_item, qty_per_unit=4, unit_price=10).id
    main_item_id, sub_item_id = main_item.id, sub_item.id

    service.delete_node(BOQLevel.SUB_SUB_ITEM, only_child_id)

    assert _reload(SubItem, sub_item_id).budgeted_price == 30
    assert _reload(MainItem, main_item_id).budgeted_price == 150


def test_delete_sub_item_cascades_and_reprices_main_item(service, make_boq, add_main, add_sub, add_sub_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=10, budgeted_price=2500)
    first_id = add_sub(main_item, sort_order=1, qty_per_unit=2, unit_price=100).id
    second = add_sub(main_item, sort_order=2, qty_per_unit=1, unit_price=50)
    leaf_id = add_sub_sub(second, qty_per_unit=1, unit_price=50).id
    main_item_id, second_id = main_item.id, second.id

    service.delete_node(BOQLevel.SUB_ITEM, second_id)

    assert _reload(SubItem, second_id) is None
    assert _reload(SubSubItem, leaf_id) is None
    assert _reload(SubItem, first_id).budgeted_price == 200
    assert _reload(MainItem, main_item_id).budgeted_price == 2000


def test_delete_main_item_cascades_whole_subtree(service, make_boq, add_main, add_sub, add_sub_sub):
    boq = make_boq()
    main_item = add_main(boq)
    sub_item = add_sub(main_item)
    leaf_id = add_sub_sub(sub_item).id
    boq_id, main_item_id, sub_item_id = boq.id, main_item.id, sub_item.id

    result = service.delete_node(BOQLevel.MAIN_ITEM, main_item_id)

    assert result.boq_id == boq_id
    assert _reload(MainItem, main_item_id) is None
    assert _reload(SubItem, sub_item_id) is None
    assert _reload(SubSubItem, leaf_id) is None


def test_delete_unknown_node_raises(service):
    with pytest.raises(NotFoundError) as exc:
        service.delete_node(BOQLevel.SUB_ITEM, 404)
    assert exc.value.message == "Sub-item not found"


# ==================== ADD ====================

def test_add_items_use_defaults_and_next_sort_order(service, make_boq, add_main):
    boq = make_boq()
    add_main(boq, sort_order=1)

    main_item = service.create_main_item(boq.id)
    assert main_item.sort_order == 2
    assert main_item.description == "New Item"
    assert main_item.quoted_price == 1
    assert main_item.budgeted_price == 0

    sub_item = service.create_sub_item(main_item.id)
    assert sub_item.sort_order == 1
    assert sub_item.type == "product"
    assert sub_item.budgeted_price == 1
    assert _reload(MainItem, main_item.id).budgeted_price == 1

    leaf = service.create_sub_sub_item(sub_item.id)
    assert leaf.description == "New Sub-Sub Item"
    assert _reload(SubItem, sub_item.id).budgeted_price == 1


def test_add_to_missing_boq_raises(service):
    with pytest.raises(NotFoundError):
        service.create_main_item(99)


# ==================== PATCH ====================

def test_patch_sub_sub_item_walks_up_the_chain(service, make_boq, add_main, add_sub, add_sub_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=10)
    sub_item = add_sub(main_item)
    leaf = add_sub_sub(sub_item, qty_per_unit=3, unit_price=20)
    add_sub_sub(sub_item, sort_order=2, qty_per_unit=1, unit_price=40)

    result = service.patch_field(BOQLevel.SUB_SUB_ITEM, leaf.id, {'unit_price': '30'})

    assert result.updated
    assert result.budgeted_price == 90
    assert _reload(SubItem, sub_item.id).budgeted_price == 130
    assert _reload(MainItem, main_item.id).budgeted_price == 1300


def test_patch_skips_unparseable_numbers(service, make_boq, add_main, add_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=1)
    sub_item = add_sub(main_item, qty_per_unit=2, unit_price=10)

    result = service.patch_field(BOQLevel.SUB_ITEM, sub_item.id, {'unit_price': ['abc'], 'description': ['Cement']})

    assert result.skipped_fields == ['unit_price']
    assert result.applied_fields == ['description']
    stored = _reload(SubItem, sub_item.id)
    assert stored.unit_price == 10
    assert stored.description == "Cement"
    assert stored.budgeted_price == 20


def test_patch_ignores_unknown_fields_and_bad_type(service, make_boq, add_main, add_sub):
    boq = make_boq()
    main_item = add_main(boq)
    sub_item = add_sub(main_item)

    result = service.patch_field(BOQLevel.SUB_ITEM, sub_item.id, {'type': 'gadget', 'budgeted_price': '5', 'id': '7'})

    assert not result.updated
    assert _reload(SubItem, sub_item.id).type == 'product'


def test_patch_manual_budget_on_childless_main_item(service, make_boq, add_main):
    """Manual budget is entered per unit and stored as a total"""
    boq = make_boq()
    main_item = add_main(boq, qty=4)

    result = service.patch_field(BOQLevel.MAIN_ITEM, main_item.id, {'budgeted_price': '25'})

    assert result.budgeted_price == 100
    assert _reload(MainItem, main_item.id).budgeted_price == 100

def test_reposted_per_unit_budget_does_not_rescale(service, make_boq, add_main):
    """The edit row re-sends the shown per-unit budget with a qty change; the stored total stays"""
    boq = make_boq()
    main_item = add_main(boq, qty=2, budgeted_price=200)

    service.patch_field(BOQLevel.MAIN_ITEM, main_item.id, {'qty': '3', 'budgeted_price': '100'})

    stored = _reload(MainItem, main_item.id)
    assert stored.qty == 3
    assert stored.budgeted_price == 200


def test_manual_budget_survives_zero_qty(service, make_boq, add_main):
    boq = make_boq()
    main_item_id = add_main(boq, qty=2, budgeted_price=200).id

    service.patch_field(BOQLevel.MAIN_ITEM, main_item_id, {'qty': '0', 'budgeted_price': '100'})
    assert _reload(MainItem, main_item_id).budgeted_price == 200

    # Zero qty shows the raw total, which comes straight back on the next change
    service.patch_field(BOQLevel.MAIN_ITEM, main_item_id, {'qty': '2', 'budgeted_price': '200'})
    assert _reload(MainItem, main_item_id).budgeted_price == 200


def test_manual_budget_entered_at_zero_qty_is_kept_as_is(service, make_boq, add_main):
    boq = make_boq()
    main_item_id = add_main(boq, qty=0, budgeted_price=0).id

    service.patch_field(BOQLevel.MAIN_ITEM, main_item_id, {'budgeted_price': '75'})

    assert _reload(MainItem, main_item_id).budgeted_price == 75



def test_patch_main_item_qty_rescales_rollup(service, make_boq, add_main, add_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=10, budgeted_price=2500)
    add_sub(main_item, sort_order=1, qty_per_unit=2, unit_price=100)
    add_sub(main_item, sort_order=2, qty_per_unit=1, unit_price=50)

    service.patch_field(BOQLevel.MAIN_ITEM, main_item.id, {'qty': '2'})

    assert _reload(MainItem, main_item.id).budgeted_price == 500


def test_manual_budget_survives_edits_elsewhere(service, make_boq, add_main, add_sub):
    boq = make_boq()
    manual = add_main(boq, sort_order=1, qty=3, budgeted_price=450)
    other = add_main(boq, sort_order=2, qty=1)
    sub_item = add_sub(other, qty_per_unit=1, unit_price=10)

    service.patch_field(BOQLevel.SUB_ITEM, sub_item.id, {'unit_price': '12'})
    service.patch_field(BOQLevel.MAIN_ITEM, manual.id, {'description': 'Renamed'})
    service.create_sub_item(other.id)

    assert _reload(MainItem, manual.id).budgeted_price == 450


# ==================== CREATE BOQ ====================

def test_create_boq_with_nested_items(service):
    items = [
        {
            'description': 'Flooring', 'qty': '10', 'quoted_price': '300', 'uom': 'Sqm',
            'subs': [
                {'description': 'Tiles', 'qty_per_unit': '2', 'budgeted_price': '200', 'sub_subs': []},
                {
                    'description': 'Labour', 'qty_per_unit': '1', 'type': 'service',
                    'sub_subs': [
                        {'description': 'Mason', 'qty_per_unit': '3', 'budgeted_price': '60'},
                        {'description': 'Helper', 'qty_per_unit': '1', 'unit_price': '40'},
                    ],
                },
            ],
        },
        {'description': 'Painting', 'qty': '2', 'quoted_price': '50', 'budgeted_price': '30', 'subs': []},
    ]

    boq = service.create_boq("Villa 7", "REF-7", items)

    main_items = MainItem.query.filter_by(boq_id=boq.id).order_by(MainItem.sort_order).all()
    assert [m.description for m in main_items] == ['Flooring', 'Painting']
    flooring, painting = main_items

    subs = SubItem.query.filter_by(main_item_id=flooring.id).order_by(SubItem.sort_order).all()
    assert subs[0].unit_price == 100
    assert subs[0].budgeted_price == 200
    assert subs[1].type == 'service'
    assert subs[1].budgeted_price == 100
    assert flooring.budgeted_price == 3000
    assert flooring.gst_percent == 18

    leaves = SubSubItem.query.filter_by(sub_item_id=subs[1].id).order_by(SubSubItem.sort_order).all()
    assert [leaf.unit_price for leaf in leaves] == [20, 40]

    assert painting.budgeted_price == 60


def test_create_boq_requires_unique_title_and_reference(service, make_boq):
    make_boq(title="Tower A", reference_number="R-1")

    with pytest.raises(ValidationError) as exc:
        service.create_boq("Tower A", "R-1")
    assert exc.value.details == {
        'title': "A BOQ with this title already exists",
        'reference_number': "A BOQ with this reference number already exists",
    }

    with pytest.raises(ValidationError) as exc:
        service.create_boq("   ")
    assert exc.value.details['title'] == "BOQ title is required"


def test_blank_reference_numbers_do_not_collide(service):
    first = service.create_boq("One", "")
    second = service.create_boq("Two", "")
    assert first.reference_number is None
    assert second.reference_number is None


# ==================== BULK SAVE ====================

def test_bulk_update_applies_form_and_reprices(service, make_boq, add_main, add_sub, add_sub_sub):
    boq = make_boq()
    main_item = add_main(boq, qty=2, quoted_price=100)
    sub_item = add_sub(main_item, qty_per_unit=1, unit_price=10)
    leaf = add_sub_sub(sub_item, qty_per_unit=2, unit_price=5)
    manual = add_main(boq, sort_order=2, qty=1, budgeted_price=70)

    form = {
        f'main_item_{main_item.id}_qty': '3',
        f'main_item_{main_item.id}_description': '',
        f'main_item_{main_item.id}_hsn_code': '',
        f'main_item_{main_item.id}_budgeted_price': '999',
        f'sub_sub_item_{leaf.id}_unit_price': '8',
        f'sub_item_{sub_item.id}_description': 'Cabling',
        f'main_item_{manual.id}_budgeted_price': '1',
    }

    result = service.bulk_update(boq.id, form)

    assert result.failed == 0
    assert result.saved == 4
    stored_main = _reload(MainItem, main_item.id)
    assert stored_main.description == 'Main'
    assert stored_main.qty == 3
    assert stored_main.budgeted_price == 48
    assert _reload(SubItem, sub_item.id).description == 'Cabling'
    assert _reload(SubSubItem, leaf.id).budgeted_price == 16
    assert _reload(MainItem, manual.id).budgeted_price == 70


def test_bulk_update_failed_record_keeps_other_edits(service, make_boq, add_main, add_sub, add_sub_sub, fail_next_save):
    """One leaf failing to save loses only its own edits; ancestors still take theirs and reprice"""
    boq = make_boq()
    main_item = add_main(boq, qty=2)
    sub_item = add_sub(main_item)
    failing_id = add_sub_sub(sub_item, sort_order=1, qty_per_unit=1, unit_price=10).id
    good_id = add_sub_sub(sub_item, sort_order=2, qty_per_unit=2, unit_price=5).id
    boq_id, main_item_id, sub_item_id = boq.id, main_item.id, sub_item.id

    form = {
        f'main_item_{main_item_id}_qty': '3',
        f'sub_item_{sub_item_id}_description': 'Cabling',
        f'sub_sub_item_{failing_id}_unit_price': '20',
        f'sub_sub_item_{good_id}_unit_price': '9',
    }
    fail_next_save(SubSubItem, failing_id)

    result = service.bulk_update(boq_id, form)

    assert result.failed == 1
    assert result.saved == 3
    assert _reload(SubSubItem, failing_id).unit_price == 10
    assert _reload(SubSubItem, good_id).budgeted_price == 18
    stored_sub = _reload(SubItem, sub_item_id)
    assert stored_sub.description == 'Cabling'
    assert stored_sub.budgeted_price == 28
    stored_main = _reload(MainItem, main_item_id)
    assert stored_main.qty == 3
    assert stored_main.budgeted_price == 84


def test_repository_save_failure_rolls_back_record(repository, make_boq, add_main, fail_next_save):
    boq = make_boq()
    main_item_id = add_main(boq, description="Main").id
    fail_next_save(MainItem, main_item_id)

    main_item = repository.main_items.get(main_item_id)
    main_item.description = "Renamed"

    assert repository.main_items.save(main_item) is False
    assert _reload(MainItem, main_item_id).description == "Main"

    main_item = repository.main_items.get(main_item_id)
    main_item.description = "Renamed"
    assert repository.main_items.save(main_item) is True
    assert _reload(MainItem, main_item_id).description == "Renamed"
