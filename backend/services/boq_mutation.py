"""
BOQ Mutation Service
Applies one user edit to a BOQ tree and keeps budgeted prices consistent.

Every operation touches the edited node and its direct ancestors only:
sub-sub-item -> sub-item -> main item, always in that order. Sibling
subtrees are never re-read or re-written.

Saves are best effort: each record is committed on its own, a failed save
is logged by the repository and the walk continues. Nothing is rolled back
across records.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from config.constants import (
    BOQLevel,
    DEFAULT_GST_PERCENT,
    DEFAULT_UOM,
    EDITABLE_FIELDS,
    ItemType,
    MAIN_ITEM_DEFAULTS,
    SUB_ITEM_DEFAULTS,
    SUB_SUB_ITEM_DEFAULTS,
)
from config.logging import get_logger
from models.boq import BOQ, MainItem, SubItem, SubSubItem
from services.boq_repository import BOQRepository, boq_repository
from services import pricing
from utils.validators import (
    BOQError,
    NotFoundError,
    ValidationError,
    parse_float,
    parse_float_or_zero,
    sanitize_string,
)

log = get_logger()

_ENTITY_NAMES = {
    BOQLevel.MAIN_ITEM: "Item",
    BOQLevel.SUB_ITEM: "Sub-item",
    BOQLevel.SUB_SUB_ITEM: "Sub-sub-item",
}

_ITEM_TYPES = {t.value for t in ItemType}


@dataclass
class PatchResult:
    """Outcome of a single-node field update"""
    node: Any
    applied_fields: List[str] = field(default_factory=list)
    skipped_fields: List[str] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return bool(self.applied_fields)

    @property
    def budgeted_price(self) -> float:
        return self.node.budgeted_price or 0.0


@dataclass
class DeleteResult:
    """Surviving ancestors of a deleted node"""
    boq_id: Optional[int] = None
    main_item_id: Optional[int] = None
    sub_item_id: Optional[int] = None


@dataclass
class BulkUpdateResult:
    saved: int = 0
    failed: int = 0


class BOQMutationService:
    """Create / patch / delete operations over the BOQ tree"""

    def __init__(self, repository: BOQRepository = None):
        self.repo = repository or boq_repository

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_boq(self, boq_id) -> BOQ:
        boq = self.repo.boqs.get(boq_id)
        if boq is None:
            raise NotFoundError("BOQ", boq_id)
        return boq

    def get_node(self, level, node_id):
        level = BOQLevel(level)
        node = self.repo.store_for(level).get(node_id)
        if node is None:
            raise NotFoundError(_ENTITY_NAMES[level], node_id)
        return node

    # ------------------------------------------------------------------
    # Ancestor chain recompute
    # ------------------------------------------------------------------

    def _recompute_sub_item(self, sub_item: SubItem) -> float:
        children = self.repo.sub_sub_items.list(sub_item.id)
        before = [child.budgeted_price for child in children]

        budgeted = pricing.recompute_sub_item(sub_item, children)

        # Children only need writing when their stored value was stale
        for child, old_value in zip(children, before):
            if child.budgeted_price != old_value:
                self.repo.sub_sub_items.save(child)
        self.repo.sub_items.save(sub_item)
        return budgeted

    def _recompute_main_item(self, main_item: MainItem) -> float:
        children = self.repo.sub_items.list(main_item.id)
        budgeted = pricing.recompute_main_item(main_item, children)
        if children:
            self.repo.main_items.save(main_item)
        return budgeted

    def _recompute_from_sub_item(self, sub_item: Optional[SubItem]) -> None:
        if sub_item is None:
            return
        self._recompute_sub_item(sub_item)
        main_item = self.repo.main_items.get(sub_item.main_item_id)
        if main_item is not None:
            self._recompute_main_item(main_item)

    # ------------------------------------------------------------------
    # BOQ header
    # ------------------------------------------------------------------

    def validate_boq_header(self, title: str, reference_number: str) -> Dict[str, str]:
        errors = {}
        if not title:
            errors['title'] = "BOQ title is required"
        else:
            existing = self.repo.boqs.find_by(title=title)
            if existing is not None:
                errors['title'] = "A BOQ with this title already exists"

        if reference_number:
            existing = self.repo.boqs.find_by(reference_number=reference_number)
            if existing is not None:
                errors['reference_number'] = "A BOQ with this reference number already exists"
        return errors

    def create_boq(self, title, reference_number=None, items: Optional[List[Mapping]] = None) -> BOQ:
        """
        Create a BOQ header and, optionally, its full item tree.

        items is the parsed creation form: a list of main item dicts, each
        with an optional "subs" list whose entries carry an optional
        "sub_subs" list.
        """
        title = sanitize_string(title, max_length=255)
        reference_number = sanitize_string(reference_number, max_length=100)

        errors = self.validate_boq_header(title, reference_number)
        if errors:
            raise ValidationError("Please correct the highlighted fields", details=errors)

        boq = BOQ(title=title, reference_number=reference_number or None)
        if not self.repo.boqs.save(boq):
            raise BOQError("Failed to create BOQ")

        log.info(f"BOQ created: {boq.id} '{boq.title}'")

        for index, item_data in enumerate(items or [], start=1):
            self._create_main_item_tree(boq.id, index, item_data)

        return boq

    def _create_main_item_tree(self, boq_id: int, sort_order: int, data: Mapping) -> Optional[MainItem]:
        qty = parse_float_or_zero(data.get('qty'))
        main_item = MainItem(
            boq_id=boq_id,
            sort_order=sort_order,
            description=sanitize_string(data.get('description')),
            qty=qty,
            uom=sanitize_string(data.get('uom')) or DEFAULT_UOM,
            quoted_price=parse_float_or_zero(data.get('quoted_price')),
            budgeted_price=0.0,
            hsn_code=sanitize_string(data.get('hsn_code')),
            gst_percent=_gst_or_default(data.get('gst_percent')),
        )
        if not self.repo.main_items.save(main_item):
            log.error(f"boq_create: could not save main item {sort_order}")
            return None

        sub_items = []
        for sub_index, sub_data in enumerate(data.get('subs') or [], start=1):
            sub_item = self._create_sub_item_tree(main_item.id, sub_index, sub_data, f"{sort_order}.{sub_index}")
            if sub_item is not None:
                sub_items.append(sub_item)

        if sub_items:
            pricing.recompute_main_item(main_item, sub_items)
        else:
            # Manual per-unit entry, scaled by qty exactly once here
            manual_per_unit = parse_float_or_zero(data.get('budgeted_price'))
            main_item.budgeted_price = pricing.calc_main_item_total(manual_per_unit, qty)

        if not self.repo.main_items.save(main_item):
            log.error(f"boq_create: could not update main item {sort_order} budgeted price")
        return main_item

    def _create_sub_item_tree(self, main_item_id: int, sort_order: int, data: Mapping, label: str) -> Optional[SubItem]:
        qty_per_unit = parse_float_or_zero(data.get('qty_per_unit'))
        sub_item = SubItem(
            main_item_id=main_item_id,
            sort_order=sort_order,
            type=_item_type(data.get('type')),
            description=sanitize_string(data.get('description')),
            qty_per_unit=qty_per_unit,
            uom=sanitize_string(data.get('uom')) or DEFAULT_UOM,
            unit_price=_unit_price_from(data, qty_per_unit),
            budgeted_price=0.0,
            hsn_code=sanitize_string(data.get('hsn_code')),
            gst_percent=_gst_or_default(data.get('gst_percent')),
        )
        sub_sub_entries = list(data.get('sub_subs') or [])
        sub_sub_items = [
            SubSubItem(
                sort_order=index,
                type=_item_type(entry.get('type')),
                description=sanitize_string(entry.get('description')),
                qty_per_unit=parse_float_or_zero(entry.get('qty_per_unit')),
                uom=sanitize_string(entry.get('uom')) or DEFAULT_UOM,
                unit_price=_unit_price_from(entry, parse_float_or_zero(entry.get('qty_per_unit'))),
                hsn_code=sanitize_string(entry.get('hsn_code')),
                gst_percent=_gst_or_default(entry.get('gst_percent')),
            )
            for index, entry in enumerate(sub_sub_entries, start=1)
        ]

        # Prices are settled before the first save so the row is never stored half-priced
        budgeted = pricing.recompute_sub_item(sub_item, sub_sub_items)
        if sub_sub_items and qty_per_unit:
            sub_item.unit_price = budgeted / qty_per_unit

        if not self.repo.sub_items.save(sub_item):
            log.error(f"boq_create: could not save sub item {label}")
            return None

        for sub_sub_item in sub_sub_items:
            sub_sub_item.sub_item_id = sub_item.id
            if not self.repo.sub_sub_items.save(sub_sub_item):
                log.error(f"boq_create: could not save sub-sub item {label}.{sub_sub_item.sort_order}")
        return sub_item

    def delete_boq(self, boq_id) -> None:
        boq = self.get_boq(boq_id)
        if not self.repo.boqs.delete(boq):
            raise BOQError("Failed to delete BOQ")
        log.info(f"BOQ deleted: {boq_id}")

    # ------------------------------------------------------------------
    # Add
    # ------------------------------------------------------------------

    def create_main_item(self, boq_id) -> MainItem:
        self.get_boq(boq_id)
        main_item = MainItem(
            boq_id=boq_id,
            sort_order=self.repo.main_items.count(boq_id) + 1,
            **MAIN_ITEM_DEFAULTS,
        )
        if not self.repo.main_items.save(main_item):
            raise BOQError("Failed to create item")
        return main_item

    def create_sub_item(self, main_item_id) -> SubItem:
        main_item = self.get_node(BOQLevel.MAIN_ITEM, main_item_id)
        sub_item = SubItem(
            main_item_id=main_item.id,
            sort_order=self.repo.sub_items.count(main_item.id) + 1,
            **SUB_ITEM_DEFAULTS,
        )
        if not self.repo.sub_items.save(sub_item):
            raise BOQError("Failed to create sub item")

        self._recompute_main_item(main_item)
        return sub_item

    def create_sub_sub_item(self, sub_item_id) -> SubSubItem:
        sub_item = self.get_node(BOQLevel.SUB_ITEM, sub_item_id)
        sub_sub_item = SubSubItem(
            sub_item_id=sub_item.id,
            sort_order=self.repo.sub_sub_items.count(sub_item.id) + 1,
            **SUB_SUB_ITEM_DEFAULTS,
        )
        if not self.repo.sub_sub_items.save(sub_sub_item):
            raise BOQError("Failed to create sub-sub item")

        self._recompute_from_sub_item(sub_item)
        return sub_sub_item

    # ------------------------------------------------------------------
    # Patch
    # ------------------------------------------------------------------

    def patch_field(self, level, node_id, field_updates: Mapping[str, Any]) -> PatchResult:
        """
        Apply field updates to one node, then recompute its ancestor chain.

        Unknown fields are ignored. Numeric fields that do not parse are
        skipped and the stored value is kept.
        """
        level = BOQLevel(level)
        node = self.get_node(level, node_id)
        result = PatchResult(node=node)
        text_fields, numeric_fields = EDITABLE_FIELDS[level]

        manual_budgeted = None
        shown_per_unit = None
        if level == BOQLevel.MAIN_ITEM:
            shown_per_unit = pricing.budgeted_per_unit(node.budgeted_price or 0.0, node.qty)
        for key, value in field_updates.items():
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                value = value[0]

            if key in text_fields:
                value = sanitize_string(value)
                if key == 'type' and value not in _ITEM_TYPES:
                    result.skipped_fields.append(key)
                    continue
                setattr(node, key, value)
                result.applied_fields.append(key)
            elif key in numeric_fields:
                number = parse_float(value)
                if number is None:
                    result.skipped_fields.append(key)
                    continue
                if key == 'budgeted_price':
                    manual_budgeted = number
                else:
                    setattr(node, key, number)
                result.applied_fields.append(key)

        if result.skipped_fields:
            log.info(f"patch {level.value} {node_id}: skipped unparseable fields {result.skipped_fields}")

        if not result.updated:
            return result

        if level == BOQLevel.MAIN_ITEM:
            # The edit row re-posts the shown per-unit figure with every change
            if manual_budgeted is not None and round(manual_budgeted, 2) != round(shown_per_unit, 2):
                node.budgeted_price = _manual_main_item_total(manual_budgeted, node.qty)
            children = self.repo.sub_items.list(node.id)
            pricing.recompute_main_item(node, children)
            if not self.repo.main_items.save(node):
                raise BOQError("Failed to save item")
        elif level == BOQLevel.SUB_ITEM:
            self._recompute_from_sub_item(node)
        else:
            pricing.recompute_sub_sub_item(node)
            if not self.repo.sub_sub_items.save(node):
                raise BOQError("Failed to save sub-sub item")
            self._recompute_from_sub_item(self.repo.sub_items.get(node.sub_item_id))

        return result

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_node(self, level, node_id) -> DeleteResult:
        """Delete a node (descendants cascade in the database) and reprice its surviving ancestors"""
        level = BOQLevel(level)
        node = self.get_node(level, node_id)
        result = DeleteResult()

        if level == BOQLevel.MAIN_ITEM:
            result.boq_id = node.boq_id
        elif level == BOQLevel.SUB_ITEM:
            result.main_item_id = node.main_item_id
        else:
            result.sub_item_id = node.sub_item_id

        if not self.repo.store_for(level).delete(node):
            raise BOQError(f"Failed to delete {_ENTITY_NAMES[level].lower()}")

        if level == BOQLevel.SUB_ITEM:
            main_item = self.repo.main_items.get(result.main_item_id)
            if main_item is not None:
                self._recompute_main_item(main_item)
        elif level == BOQLevel.SUB_SUB_ITEM:
            sub_item = self.repo.sub_items.get(result.sub_item_id)
            if sub_item is not None:
                result.main_item_id = sub_item.main_item_id
            self._recompute_from_sub_item(sub_item)

        return result

    # ------------------------------------------------------------------
    # Bulk save from the edit page
    # ------------------------------------------------------------------

    def bulk_update(self, boq_id, form: Mapping[str, Any]) -> BulkUpdateResult:
        """
        Save every field of the edit page in one pass.

        Form keys look like main_item_<id>_<field>, sub_item_<id>_<field> and
        sub_sub_item_<id>_<field>. The whole BOQ is repriced bottom-up. Each
        record is saved on its own; failures are counted and skipped.

        A record's form edits are applied right before its own save, once its
        children are saved, so a failed save never holds another record's edits.
        """
        self.get_boq(boq_id)
        result = BulkUpdateResult()

        def save(store, record):
            if store.save(record):
                result.saved += 1
            else:
                result.failed += 1

        for main_item in self.repo.main_items.list(boq_id):
            sub_items = self.repo.sub_items.list(main_item.id)
            for sub_item in sub_items:
                sub_sub_items = self.repo.sub_sub_items.list(sub_item.id)
                for sub_sub_item in sub_sub_items:
                    _apply_form_fields(sub_sub_item, form, f"sub_sub_item_{sub_sub_item.id}_", BOQLevel.SUB_SUB_ITEM)
                    pricing.recompute_sub_sub_item(sub_sub_item)
                    save(self.repo.sub_sub_items, sub_sub_item)

                _apply_form_fields(sub_item, form, f"sub_item_{sub_item.id}_", BOQLevel.SUB_ITEM)
                pricing.recompute_sub_item(sub_item, sub_sub_items)
                save(self.repo.sub_items, sub_item)

            _apply_form_fields(main_item, form, f"main_item_{main_item.id}_", BOQLevel.MAIN_ITEM)
            pricing.recompute_main_item(main_item, sub_items)
            save(self.repo.main_items, main_item)

        if result.failed:
            log.warning(f"boq_save: BOQ {boq_id} saved with {result.failed} failed record(s)")
        return result


def _apply_form_fields(node, form: Mapping[str, Any], prefix: str, level: BOQLevel) -> None:
    text_fields, numeric_fields = EDITABLE_FIELDS[level]

    for name in text_fields:
        key = prefix + name
        if key not in form:
            continue
        value = sanitize_string(form.get(key))
        if name == 'hsn_code':
            # HSN may legitimately be cleared
            node.hsn_code = value
        elif value and (name != 'type' or value in _ITEM_TYPES):
            setattr(node, name, value)

    for name in numeric_fields:
        # Main item budget comes from its sub-items or the manual entry, not the bulk form
        if name == 'budgeted_price':
            continue
        number = parse_float(form.get(prefix + name))
        if number is not None:
            setattr(node, name, number)


def _manual_main_item_total(per_unit: float, qty: float) -> float:
    """Manual main item budget is entered per unit; a zero qty keeps the figure as entered"""
    if not qty:
        return per_unit
    return pricing.calc_main_item_total(per_unit, qty)


def _gst_or_default(value) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_GST_PERCENT
    return parse_float_or_zero(value)


def _item_type(value) -> str:
    value = sanitize_string(value)
    return value if value in _ITEM_TYPES else ItemType.PRODUCT.value


def _unit_price_from(data: Mapping, qty_per_unit: float) -> float:
    """
    Unit price for a new line item.

    The creation form may send either a unit_price or only the line's
    budgeted_price; the latter is turned back into a unit price so that
    qty_per_unit * unit_price reproduces it.
    """
    unit_price = parse_float(data.get('unit_price'))
    if unit_price is not None:
        return unit_price
    budgeted = parse_float_or_zero(data.get('budgeted_price'))
    if qty_per_unit:
        return budgeted / qty_per_unit
    return budgeted


boq_mutation_service = BOQMutationService()
