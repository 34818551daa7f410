"""
Concurrent order tests.

Runs against a file-backed SQLite database so each thread gets its own
connection and transactions really overlap.
"""

import threading

import pytest

from riom import create_app
from riom.errors import InsufficientStockError
from riom.extensions import db
from riom.models import Order, Sku, StockHistory
from riom.services import order_service, stock_service
from riom.services.products_service import create_product
from riom.services.sku_service import create_sku


@pytest.fixture()
def race_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'BCRYPT_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _seed_sku(app, stock: int) -> int:
    with app.app_context():
        product = create_product({"name": "Mug", "category": "Kitchen", "base_price_cents": 900})
        sku = create_sku({"product_id": product.id, "sku": "MUG-BLUE", "price_cents": 900, "stock": stock})
        return sku.id


def _run_concurrently(app, workers: int, target):
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def _worker():
        with app.app_context():
            barrier.wait()
            try:
                result = target()
            except Exception as exc:
                result = exc
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


class TestConcurrentOrders:

    def test_last_unit_sold_once(self, race_app):
        sku_id = _seed_sku(race_app, stock=1)

        outcomes = _run_concurrently(
            race_app,
            2,
            lambda: order_service.create_order({"items": [{"sku_id": sku_id, "quantity": 1}]}).id,
        )

        successes = [o for o in outcomes if isinstance(o, int)]
        failures = [o for o in outcomes if isinstance(o, InsufficientStockError)]
        assert len(successes) == 1, outcomes
        assert len(failures) == 1, outcomes

        with race_app.app_context():
            assert db.session.get(Sku, sku_id).stock == 0
            assert db.session.query(Order).count() == 1
            order_entries = (
                db.session.query(StockHistory)
                .filter(StockHistory.sku_id == sku_id, StockHistory.reason.like("order:%"))
                .count()
            )
            assert order_entries == 1
            assert stock_service.ledger_balance(sku_id) == 0

    def test_parallel_adjustments_are_serialized(self, race_app):
        sku_id = _seed_sku(race_app, stock=0)

        outcomes = _run_concurrently(
            race_app,
            5,
            lambda: stock_service.adjust_stock(sku_id, 2, "delivery").history.new_stock,
        )

        assert sorted(outcomes) == [2, 4, 6, 8, 10]
        with race_app.app_context():
            assert db.session.get(Sku, sku_id).stock == 10
            assert stock_service.ledger_balance(sku_id) == 10
