from datetime import datetime
from config.db import db


class BOQ(db.Model):
    __tablename__ = "boqs"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False, unique=True)
    # Empty reference numbers are stored as NULL so the unique index allows many of them
    reference_number = db.Column(db.String(100), nullable=True, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    main_items = db.relationship(
        "MainItem",
        backref="boq",
        order_by="MainItem.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy=True,
    )

    def __repr__(self):
        return f'<BOQ {self.id}: {self.title}>'


class MainItem(db.Model):
    """Top-level BOQ line. budgeted_price is the quantity-scaled total, not per unit."""
    __tablename__ = "main_boq_items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    boq_id = db.Column(db.Integer, db.ForeignKey("boqs.id", ondelete="CASCADE"), nullable=False, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=1)
    description = db.Column(db.Text, nullable=False, default='')
    qty = db.Column(db.Float, nullable=False, default=1.0)
    uom = db.Column(db.String(50), nullable=False, default='Nos')
    quoted_price = db.Column(db.Float, nullable=False, default=0.0)
    budgeted_price = db.Column(db.Float, nullable=False, default=0.0)
    hsn_code = db.Column(db.String(50), nullable=True, default='')
    gst_percent = db.Column(db.Float, nullable=False, default=18.0)

    sub_items = db.relationship(
        "SubItem",
        backref="main_item",
        order_by="SubItem.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy=True,
    )

    __table_args__ = (
        db.Index('idx_main_item_boq_sort', 'boq_id', 'sort_order'),
    )

    def __repr__(self):
        return f'<MainItem {self.id}: {self.description}>'


class SubItem(db.Model):
    """Component of one unit of its main item."""
    __tablename__ = "sub_items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    main_item_id = db.Column(db.Integer, db.ForeignKey("main_boq_items.id", ondelete="CASCADE"), nullable=False, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=1)
    type = db.Column(db.String(20), nullable=False, default='product')
    description = db.Column(db.Text, nullable=False, default='')
    qty_per_unit = db.Column(db.Float, nullable=False, default=1.0)
    uom = db.Column(db.String(50), nullable=False, default='Nos')
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    budgeted_price = db.Column(db.Float, nullable=False, default=0.0)
    hsn_code = db.Column(db.String(50), nullable=True, default='')
    gst_percent = db.Column(db.Float, nullable=False, default=18.0)

    sub_sub_items = db.relationship(
        "SubSubItem",
        backref="sub_item",
        order_by="SubSubItem.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy=True,
    )

    __table_args__ = (
        db.Index('idx_sub_item_main_sort', 'main_item_id', 'sort_order'),
    )

    def __repr__(self):
        return f'<SubItem {self.id}: {self.description}>'


class SubSubItem(db.Model):
    """Leaf of the BOQ tree. budgeted_price is always qty_per_unit * unit_price."""
    __tablename__ = "sub_sub_items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    sub_item_id = db.Column(db.Integer, db.ForeignKey("sub_items.id", ondelete="CASCADE"), nullable=False, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=1)
    type = db.Column(db.String(20), nullable=False, default='product')
    description = db.Column(db.Text, nullable=False, default='')
    qty_per_unit = db.Column(db.Float, nullable=False, default=1.0)
    uom = db.Column(db.String(50), nullable=False, default='Nos')
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    budgeted_price = db.Column(db.Float, nullable=False, default=0.0)
    hsn_code = db.Column(db.String(50), nullable=True, default='')
    gst_percent = db.Column(db.Float, nullable=False, default=18.0)

    __table_args__ = (
        db.Index('idx_sub_sub_item_sub_sort', 'sub_item_id', 'sort_order'),
    )

    def __repr__(self):
        return f'<SubSubItem {self.id}: {self.description}>'
