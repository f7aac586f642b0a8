from config.db import db
from models.boq import BOQ, MainItem, SubItem, SubSubItem

__all__ = ['db', 'BOQ', 'MainItem', 'SubItem', 'SubSubItem']
