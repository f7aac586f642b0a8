"""
BOQ Controller
Page rendering and HTMX handlers for BOQ create / view / edit and item-level edits.
"""
import re
from datetime import date

from flask import jsonify, make_response, redirect, render_template, request, url_for

from config.constants import GST_OPTIONS, UOM_OPTIONS, BOQLevel
from config.db import db
from config.logging import get_logger
from services.boq_mutation import boq_mutation_service
from services.boq_view import build_boq_edit, build_boq_list, build_boq_view, build_sub_items_edit
from utils.toast import error_toast, set_toast
from utils.validators import BOQError, NotFoundError, ValidationError

log = get_logger()

GENERIC_ERROR = "Something went wrong. Please try again."

_ITEM_KEY = re.compile(
    r'^items\[(\d+)\]\.(?:subs\[(\d+)\]\.(?:sub_subs\[(\d+)\]\.)?)?(\w+)$'
)
_FORM_FIELD_KEY = re.compile(r'^(?:main_item|sub_item|sub_sub_item)_\d+_\w+$')


def is_htmx_request():
    return request.headers.get('HX-Request') == 'true'


def render_page(page_template, partial_template, **context):
    """Full page for normal navigation, content fragment for HTMX swaps"""
    if is_htmx_request():
        return render_template(partial_template, **context)
    return render_template(page_template, **context)


def _render_edit(boq_id, open_main_item_ids=None, open_sub_item_ids=None):
    data = build_boq_edit(
        boq_id,
        open_main_item_ids=open_main_item_ids,
        open_sub_item_ids=open_sub_item_ids,
    )
    return render_page('boq/edit.html', 'boq/_edit_content.html', boq=data)


def parse_items_form(form):
    """
    Collect the nested creation form into a list of main item dicts.

    Keys look like items[0].description, items[0].subs[1].qty_per_unit and
    items[0].subs[1].sub_subs[2].unit_price. Each list stops at the first
    index whose description is blank, so trailing empty rows are ignored.
    """
    tree = {}
    for key in form.keys():
        match = _ITEM_KEY.match(key)
        if not match:
            continue
        i, j, k, name = match.groups()
        main = tree.setdefault(int(i), {'fields': {}, 'subs': {}})
        if j is None:
            main['fields'][name] = form.get(key)
            continue
        sub = main['subs'].setdefault(int(j), {'fields': {}, 'sub_subs': {}})
        if k is None:
            sub['fields'][name] = form.get(key)
        else:
            sub['sub_subs'].setdefault(int(k), {})[name] = form.get(key)

    def leading_rows(indexed):
        rows = []
        index = 0
        while index in indexed:
            row = indexed[index]
            fields = row.get('fields', row)
            if not (fields.get('description') or '').strip():
                break
            rows.append(row)
            index += 1
        return rows

    items = []
    for main in leading_rows(tree):
        subs = []
        for sub in leading_rows(main['subs']):
            entry = dict(sub['fields'])
            entry['sub_subs'] = [dict(ssi) for ssi in leading_rows(sub['sub_subs'])]
            subs.append(entry)
        item = dict(main['fields'])
        item['subs'] = subs
        items.append(item)
    return items


# ==================== PAGES ====================

def list_boqs():
    """GET /boq"""
    try:
        data = build_boq_list()
        return render_page('boq/list.html', 'boq/_list_content.html', boq_list=data)
    except Exception as e:
        log.error(f"boq_list: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def _create_form_context(title='', reference_number='', form_date=None, errors=None):
    return {
        'title': title,
        'reference_number': reference_number,
        'date': form_date or date.today().isoformat(),
        'uom_options': UOM_OPTIONS,
        'gst_options': GST_OPTIONS,
        'errors': errors or {},
    }


def create_boq_form():
    """GET /boq/create"""
    return render_page('boq/create.html', 'boq/_create_content.html', **_create_form_context())


def create_boq():
    """POST /boq/create"""
    title = request.form.get('title', '')
    reference_number = request.form.get('reference_number', '')
    try:
        items = parse_items_form(request.form)
        boq = boq_mutation_service.create_boq(title, reference_number, items)
        response = make_response(redirect(url_for('boq_routes.view_boq_route', boq_id=boq.id)))
        return set_toast(response, 'success', "BOQ created")

    except ValidationError as e:
        context = _create_form_context(
            title.strip(), reference_number.strip(), request.form.get('date'), e.details
        )
        return render_page('boq/create.html', 'boq/_create_content.html', **context)
    except BOQError as e:
        log.error(f"boq_create: {e.message}")
        return error_toast(500, GENERIC_ERROR)
    except Exception as e:
        db.session.rollback()
        log.error(f"boq_create: unexpected error: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def view_boq(boq_id):
    """GET /boq/<id>"""
    try:
        data = build_boq_view(boq_id)
        return render_page('boq/view.html', 'boq/_view_content.html', boq=data)
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        log.error(f"boq_view: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def edit_boq(boq_id):
    """GET /boq/<id>/edit"""
    try:
        return _render_edit(boq_id)
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        log.error(f"boq_edit: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def save_boq(boq_id):
    """POST /boq/<id>/save - bulk update from the edit page, back to view mode"""
    try:
        result = boq_mutation_service.bulk_update(boq_id, request.form)
        data = build_boq_view(boq_id)

        response = make_response(render_template('boq/_view_content.html', boq=data))
        response.headers['HX-Push-Url'] = url_for('boq_routes.view_boq_route', boq_id=boq_id)
        if result.failed:
            return set_toast(response, 'error', f"{result.failed} item(s) could not be saved")
        return set_toast(response, 'success', "BOQ saved")

    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"boq_save: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def delete_boq(boq_id):
    """DELETE /boq/<id>"""
    try:
        boq_mutation_service.delete_boq(boq_id)
        list_url = url_for('boq_routes.list_boqs_route')

        if is_htmx_request():
            response = make_response('', 200)
            response.headers['HX-Redirect'] = list_url
        else:
            response = make_response(redirect(list_url))
        return set_toast(response, 'success', "BOQ deleted successfully")

    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"boq_delete: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


# ==================== ADD ITEMS ====================

def add_main_item(boq_id):
    """POST /boq/<id>/main-items"""
    try:
        main_item = boq_mutation_service.create_main_item(boq_id)
        return _render_edit(boq_id, open_main_item_ids={main_item.id})
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"add_main_item: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def add_sub_item(boq_id, main_item_id):
    """POST /boq/<id>/main-items/<item_id>/sub-items"""
    try:
        boq_mutation_service.create_sub_item(main_item_id)
        return _render_edit(boq_id, open_main_item_ids={main_item_id})
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"add_sub_item: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def add_sub_sub_item(boq_id, sub_item_id):
    """POST /boq/<id>/sub-items/<sub_id>/sub-sub-items"""
    try:
        boq_mutation_service.create_sub_sub_item(sub_item_id)
        sub_item = boq_mutation_service.get_node(BOQLevel.SUB_ITEM, sub_item_id)
        return _render_edit(
            boq_id,
            open_main_item_ids={sub_item.main_item_id},
            open_sub_item_ids={sub_item_id},
        )
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"add_sub_sub_item: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


def expand_main_item(boq_id, main_item_id):
    """GET /boq/<id>/main-items/<item_id>/expand - lazy sub-item block"""
    try:
        boq_mutation_service.get_node(BOQLevel.MAIN_ITEM, main_item_id)
        sub_items = build_sub_items_edit(main_item_id)
        return render_template(
            'boq/_sub_items.html',
            boq_id=boq_id,
            main_item_id=main_item_id,
            sub_items=sub_items,
            uom_options=UOM_OPTIONS,
            gst_options=GST_OPTIONS,
            open_sub_item_ids=set(),
        )
    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        log.error(f"expand_main_item: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


# ==================== PATCH / DELETE ITEMS ====================

def patch_fields_from_form(level, node_id, form):
    """
    Field updates for one node.

    Edit-page inputs are named <level>_<id>_<field> and HTMX posts the whole
    form, so only this node's prefixed keys are kept. Plain field names are
    accepted as well.
    """
    prefix = f"{BOQLevel(level).value}_{node_id}_"
    prefixed = {}
    plain = {}
    for key, values in form.to_dict(flat=False).items():
        if key.startswith(prefix):
            prefixed[key[len(prefix):]] = values
        elif not _FORM_FIELD_KEY.match(key):
            plain[key] = values
    plain.update(prefixed)
    return plain


def patch_item(boq_id, level, node_id):
    """PATCH a single node field; responds with the node's new budgeted price"""
    try:
        updates = patch_fields_from_form(level, node_id, request.form)
        result = boq_mutation_service.patch_field(level, node_id, updates)

        response = jsonify({"budgeted_price": result.budgeted_price})
        if result.updated:
            set_toast(response, 'info', "Item saved")
        return response

    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"patch_{BOQLevel(level).value}: {node_id}: {str(e)}")
        return error_toast(500, GENERIC_ERROR)


_DELETED_MESSAGES = {
    BOQLevel.MAIN_ITEM: "Item deleted",
    BOQLevel.SUB_ITEM: "Sub-item deleted",
    BOQLevel.SUB_SUB_ITEM: "Sub-sub-item deleted",
}


def delete_item(boq_id, level, node_id):
    """DELETE a node and re-render the edit content with the surviving ancestors open"""
    level = BOQLevel(level)
    try:
        result = boq_mutation_service.delete_node(level, node_id)

        open_main = {result.main_item_id} if result.main_item_id else None
        open_sub = {result.sub_item_id} if result.sub_item_id else None
        response = make_response(_render_edit(boq_id, open_main, open_sub))
        return set_toast(response, 'success', _DELETED_MESSAGES[level])

    except NotFoundError as e:
        return error_toast(404, e.message)
    except Exception as e:
        db.session.rollback()
        log.error(f"delete_{level.value}: {node_id}: {str(e)}")
        return error_toast(500, GENERIC_ERROR)
