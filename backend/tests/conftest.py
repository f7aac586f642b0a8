"""
Shared pytest fixtures

Each test gets a fresh application backed by an in-memory SQLite database.
"""
import pytest
from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError

from app import create_app
from config.db import db
from models.boq import BOQ, MainItem, SubItem, SubSubItem
from services.boq_mutation import BOQMutationService
from services.boq_repository import BOQRepository


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'RATELIMIT_ENABLED': False,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def repository(app):
    return BOQRepository()


@pytest.fixture
def service(repository):
    return BOQMutationService(repository)


@pytest.fixture
def make_boq(app):
    """Insert a BOQ tree directly, bypassing the recompute logic"""
    def _make(title="Tower A", reference_number=None):
        boq = BOQ(title=title, reference_number=reference_number)
        db.session.add(boq)
        db.session.commit()
        return boq
    return _make


@pytest.fixture
def add_main(app):
    def _add(boq, sort_order=1, qty=1.0, quoted_price=0.0, budgeted_price=0.0, description="Main"):
        item = MainItem(
            boq_id=boq.id, sort_order=sort_order, description=description,
            qty=qty, quoted_price=quoted_price, budgeted_price=budgeted_price,
        )
        db.session.add(item)
        db.session.commit()
        return item
    return _add


@pytest.fixture
def add_sub(app):
    def _add(main_item, sort_order=1, qty_per_unit=1.0, unit_price=0.0, budgeted_price=None, description="Sub"):
        if budgeted_price is None:
            budgeted_price = qty_per_unit * unit_price
        item = SubItem(
            main_item_id=main_item.id, sort_order=sort_order, description=description,
            qty_per_unit=qty_per_unit, unit_price=unit_price, budgeted_price=budgeted_price,
        )
        db.session.add(item)
        db.session.commit()
        return item
    return _add


@pytest.fixture
def add_sub_sub(app):
    def _add(sub_item, sort_order=1, qty_per_unit=1.0, unit_price=0.0, description="Sub-sub"):
        item = SubSubItem(
            sub_item_id=sub_item.id, sort_order=sort_order, description=description,
            qty_per_unit=qty_per_unit, unit_price=unit_price,
            budgeted_price=qty_per_unit * unit_price,
        )
        db.session.add(item)
        db.session.commit()
        return item
    return _add


@pytest.fixture
def fail_next_save(app):
    """Arm a one-off write failure for the next flush that carries the given record"""
    session = db.session()
    armed = []

    def before_flush(flush_session, flush_context, instances):
        if not armed:
            return
        model, record_id = armed[0]
        for obj in flush_session.dirty:
            if isinstance(obj, model) and inspect(obj).identity == (record_id,):
                armed.pop()
                raise SQLAlchemyError("disk I/O error")

    event.listen(session, 'before_flush', before_flush)

    def _arm(model, record_id):
        armed.append((model, record_id))

    yield _arm
    event.remove(session, 'before_flush', before_flush)
