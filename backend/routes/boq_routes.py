"""
BOQ Routes - pages, HTMX fragments and downloads for Bill of Quantities management
"""
import os
from functools import wraps

from flask import Blueprint, current_app

from config.constants import BOQLevel
from controllers.boq_controller import (
    add_main_item,
    add_sub_item,
    add_sub_sub_item,
    create_boq,
    create_boq_form,
    delete_boq,
    delete_item,
    edit_boq,
    expand_main_item,
    list_boqs,
    patch_item,
    save_boq,
    view_boq,
)
from controllers.boq_export_controller import download_boq_excel, download_boq_pdf

EXPORT_RATE_LIMIT = os.getenv("EXPORT_RATE_LIMIT", "30 per minute")


# Rate limit decorator helper for heavy endpoints
def rate_limit(limit_string):
    """Apply rate limiting to expensive endpoints like PDF generation"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Get limiter from app context
            limiter = getattr(current_app, 'limiter', None)
            if limiter:
                # Apply limit dynamically
                limited_func = limiter.limit(limit_string)(f)
                return limited_func(*args, **kwargs)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


boq_routes = Blueprint('boq_routes', __name__, url_prefix='/boq')


# BOQ Management
@boq_routes.route('', methods=['GET'])
def list_boqs_route():
    """All BOQs with totals"""
    return list_boqs()

@boq_routes.route('/create', methods=['GET'])
def create_boq_form_route():
    return create_boq_form()

@boq_routes.route('/create', methods=['POST'])
def create_boq_route():
    """Create BOQ with its nested items"""
    return create_boq()

@boq_routes.route('/<int:boq_id>', methods=['GET'])
def view_boq_route(boq_id):
    return view_boq(boq_id)

@boq_routes.route('/<int:boq_id>/edit', methods=['GET'])
def edit_boq_route(boq_id):
    return edit_boq(boq_id)

@boq_routes.route('/<int:boq_id>/save', methods=['POST'])
def save_boq_route(boq_id):
    """Bulk save from the edit page"""
    return save_boq(boq_id)

@boq_routes.route('/<int:boq_id>', methods=['DELETE'])
def delete_boq_route(boq_id):
    return delete_boq(boq_id)


# Main items
@boq_routes.route('/<int:boq_id>/main-items', methods=['POST'])
def add_main_item_route(boq_id):
    return add_main_item(boq_id)

@boq_routes.route('/<int:boq_id>/main-items/<int:item_id>', methods=['PATCH'])
def patch_main_item_route(boq_id, item_id):
    return patch_item(boq_id, BOQLevel.MAIN_ITEM, item_id)

@boq_routes.route('/<int:boq_id>/main-items/<int:item_id>', methods=['DELETE'])
def delete_main_item_route(boq_id, item_id):
    return delete_item(boq_id, BOQLevel.MAIN_ITEM, item_id)

@boq_routes.route('/<int:boq_id>/main-items/<int:item_id>/expand', methods=['GET'])
def expand_main_item_route(boq_id, item_id):
    """Lazy-load sub-items when an accordion opens"""
    return expand_main_item(boq_id, item_id)


# Sub items
@boq_routes.route('/<int:boq_id>/main-items/<int:item_id>/sub-items', methods=['POST'])
def add_sub_item_route(boq_id, item_id):
    return add_sub_item(boq_id, item_id)

@boq_routes.route('/<int:boq_id>/sub-items/<int:sub_item_id>', methods=['PATCH'])
def patch_sub_item_route(boq_id, sub_item_id):
    return patch_item(boq_id, BOQLevel.SUB_ITEM, sub_item_id)

@boq_routes.route('/<int:boq_id>/sub-items/<int:sub_item_id>', methods=['DELETE'])
def delete_sub_item_route(boq_id, sub_item_id):
    return delete_item(boq_id, BOQLevel.SUB_ITEM, sub_item_id)


# Sub-sub items
@boq_routes.route('/<int:boq_id>/sub-items/<int:sub_item_id>/sub-sub-items', methods=['POST'])
def add_sub_sub_item_route(boq_id, sub_item_id):
    return add_sub_sub_item(boq_id, sub_item_id)

@boq_routes.route('/<int:boq_id>/sub-sub-items/<int:sub_sub_item_id>', methods=['PATCH'])
def patch_sub_sub_item_route(boq_id, sub_sub_item_id):
    return patch_item(boq_id, BOQLevel.SUB_SUB_ITEM, sub_sub_item_id)

@boq_routes.route('/<int:boq_id>/sub-sub-items/<int:sub_sub_item_id>', methods=['DELETE'])
def delete_sub_sub_item_route(boq_id, sub_sub_item_id):
    return delete_item(boq_id, BOQLevel.SUB_SUB_ITEM, sub_sub_item_id)


# Downloads
@boq_routes.route('/<int:boq_id>/export/excel', methods=['GET'])
@rate_limit(EXPORT_RATE_LIMIT)
def export_excel_route(boq_id):
    """Download BOQ as Excel"""
    return download_boq_excel(boq_id)

@boq_routes.route('/<int:boq_id>/export/pdf', methods=['GET'])
@rate_limit(EXPORT_RATE_LIMIT)
def export_pdf_route(boq_id):
    """Download BOQ as PDF"""
    return download_boq_pdf(boq_id)
