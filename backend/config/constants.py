"""
Application Constants and Enums

Item levels, item types, dropdown options and the default values used when
a new BOQ item is added from the edit page.
"""

from enum import Enum


# ==================== BOQ TREE ====================

class BOQLevel(str, Enum):
    """Depth of a node in the BOQ tree"""
    MAIN_ITEM = 'main_item'
    SUB_ITEM = 'sub_item'
    SUB_SUB_ITEM = 'sub_sub_item'


class ItemType(str, Enum):
    """Sub-item / sub-sub-item type label"""
    PRODUCT = 'product'
    SERVICE = 'service'


# ==================== DROPDOWNS ====================

UOM_OPTIONS = [
    "Nos",
    "Sqm",
    "Sqft",
    "Rmt",
    "Cum",
    "Kg",
    "MT",
    "Lot",
    "Set",
    "Lumpsum",
    "Ltr",
    "Pair",
    "Bag",
    "Box",
    "Roll",
    "Bundle",
    "Trip",
    "Day",
    "Month",
    "Hour",
]

GST_OPTIONS = [0, 5, 12, 18, 28]

DEFAULT_UOM = "Nos"
DEFAULT_GST_PERCENT = 18.0


# ==================== NEW ITEM DEFAULTS ====================

MAIN_ITEM_DEFAULTS = {
    'description': 'New Item',
    'qty': 1.0,
    'uom': DEFAULT_UOM,
    'quoted_price': 1.0,
    'budgeted_price': 0.0,
    'hsn_code': '',
    'gst_percent': DEFAULT_GST_PERCENT,
}

SUB_ITEM_DEFAULTS = {
    'type': ItemType.PRODUCT.value,
    'description': 'New Sub Item',
    'qty_per_unit': 1.0,
    'uom': DEFAULT_UOM,
    'unit_price': 1.0,
    'budgeted_price': 1.0,
    'hsn_code': '',
    'gst_percent': DEFAULT_GST_PERCENT,
}

SUB_SUB_ITEM_DEFAULTS = dict(SUB_ITEM_DEFAULTS, description='New Sub-Sub Item')


# ==================== EDITABLE FIELDS ====================

# Fields a single-field PATCH may touch, per level. Anything else is ignored.
MAIN_ITEM_TEXT_FIELDS = ('description', 'uom', 'hsn_code')
MAIN_ITEM_NUMERIC_FIELDS = ('qty', 'quoted_price', 'budgeted_price', 'gst_percent')

LINE_ITEM_TEXT_FIELDS = ('type', 'description', 'uom', 'hsn_code')
LINE_ITEM_NUMERIC_FIELDS = ('qty_per_unit', 'unit_price', 'gst_percent')

EDITABLE_FIELDS = {
    BOQLevel.MAIN_ITEM: (MAIN_ITEM_TEXT_FIELDS, MAIN_ITEM_NUMERIC_FIELDS),
    BOQLevel.SUB_ITEM: (LINE_ITEM_TEXT_FIELDS, LINE_ITEM_NUMERIC_FIELDS),
    BOQLevel.SUB_SUB_ITEM: (LINE_ITEM_TEXT_FIELDS, LINE_ITEM_NUMERIC_FIELDS),
}
