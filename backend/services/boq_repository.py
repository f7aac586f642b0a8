"""
BOQ Repository
Thin persistence layer over Flask-SQLAlchemy for the four BOQ tables.

Each table gets a RecordStore exposing get / list / count / save / delete.
Saves commit one record at a time; a failed save is rolled back, logged and
reported as False so batch callers can carry on with the remaining records.
Cascade deletion of descendants is left to the database foreign keys.
"""
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.constants import BOQLevel
from config.db import db
from config.logging import get_logger
from models.boq import BOQ, MainItem, SubItem, SubSubItem

log = get_logger()


class RecordStore:
    """Persistence operations for a single model"""

    def __init__(self, model, parent_field: Optional[str] = None):
        self.model = model
        self.parent_field = parent_field

    @property
    def name(self) -> str:
        return self.model.__tablename__

    def get(self, record_id) -> Optional[Any]:
        if record_id is None:
            return None
        return db.session.get(self.model, record_id)

    def list(self, parent_id=None) -> List[Any]:
        query = self.model.query
        if self.parent_field:
            query = query.filter(getattr(self.model, self.parent_field) == parent_id)
        if hasattr(self.model, 'sort_order'):
            query = query.order_by(self.model.sort_order, self.model.id)
        else:
            query = query.order_by(self.model.created_at, self.model.id)
        return query.all()

    def count(self, parent_id=None) -> int:
        query = self.model.query
        if self.parent_field:
            query = query.filter(getattr(self.model, self.parent_field) == parent_id)
        return query.count()

    def find_by(self, **filters) -> Optional[Any]:
        return self.model.query.filter_by(**filters).first()

    def save(self, record) -> bool:
        try:
            db.session.add(record)
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            log.error(f"{self.name}: error saving {getattr(record, 'id', None)}: {str(e)}")
            return False

    def delete(self, record) -> bool:
        try:
            db.session.delete(record)
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            log.error(f"{self.name}: error deleting {getattr(record, 'id', None)}: {str(e)}")
            return False


class BOQRepository:
    """All stores needed by the BOQ services, grouped by tree level"""

    def __init__(self):
        self.boqs = RecordStore(BOQ)
        self.main_items = RecordStore(MainItem, 'boq_id')
        self.sub_items = RecordStore(SubItem, 'main_item_id')
        self.sub_sub_items = RecordStore(SubSubItem, 'sub_item_id')

    def store_for(self, level) -> RecordStore:
        level = BOQLevel(level)
        if level == BOQLevel.MAIN_ITEM:
            return self.main_items
        if level == BOQLevel.SUB_ITEM:
            return self.sub_items
        return self.sub_sub_items


boq_repository = BOQRepository()
