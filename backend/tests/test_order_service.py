"""
Order coordinator tests.

Verifies:
- Totals are computed in cents (subtotal, tax, total)
- An order and all its stock deductions commit together or not at all
- Payload validation happens before any stock is touched
"""

import re
from datetime import datetime

import pytest

from riom.errors import InsufficientStockError, InvalidInputError, OrderNotFoundError, SkuNotFoundError
from riom.models import Order, Sku, StockHistory
from riom.services import order_service


def _stock(db_session, sku_id):
    return db_session.get(Sku, sku_id, populate_existing=True).stock


# =============================================================================
# TOTALS
# =============================================================================


class TestOrderTotals:

    def test_tax_rate_totals(self, db_session, make_sku):
        a = make_sku(stock=10, price_cents=1000)
        b = make_sku(stock=10, price_cents=550)

        order = order_service.create_order({
            "items": [{"sku_id": a.id, "quantity": 2}, {"sku_id": b.id, "quantity": 1}],
            "tax_rate": 0.1,
        })

        assert order.sub_total_cents == 2550
        assert order.tax_cents == 255
        assert order.total_cents == 2805
        assert [line.line_total_cents for line in order.lines] == [2000, 550]

    def test_tax_rate_rounds_half_up(self, db_session, make_sku):
        sku = make_sku(stock=5, price_cents=125)
        order = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}], "tax_rate": 0.1})
        # 12.5 cents
        assert order.tax_cents == 13
        assert order.total_cents == 138

    def test_explicit_tax_cents_wins_over_rate(self, db_session, make_sku):
        sku = make_sku(stock=5, price_cents=1000)
        order = order_service.create_order({
            "items": [{"sku_id": sku.id, "quantity": 1}],
            "tax_cents": 42,
            "tax_rate": 0.5,
        })
        assert order.tax_cents == 42
        assert order.total_cents == 1042

    @pytest.mark.parametrize("rate", [1e20, 1e300])
    def test_tax_rate_above_money_range_rejected(self, db_session, make_sku, rate):
        sku = make_sku(stock=5, price_cents=1000)

        with pytest.raises(InvalidInputError):
            order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}], "tax_rate": rate})

        assert _stock(db_session, sku.id) == 5
        assert db_session.query(Order).count() == 0

    def test_no_tax(self, db_session, make_sku):
        sku = make_sku(stock=5, price_cents=300)
        order = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 3}]})
        assert order.tax_cents == 0
        assert order.total_cents == order.sub_total_cents == 900

    def test_line_snapshots_survive_sku_changes(self, db_session, make_sku):
        sku = make_sku(stock=5, price_cents=700, attributes={"size": "M"})
        order = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]})

        sku.price_cents = 900
        db_session.commit()

        line = db_session.get(Order, order.id).lines[0]
        assert line.unit_price_cents == 700
        assert line.attributes == {"size": "M"}


# =============================================================================
# ATOMICITY
# =============================================================================


class TestOrderAtomicity:

    def test_deducts_stock_and_writes_ledger(self, db_session, make_sku, staff_user):
        sku = make_sku(stock=5)

        order = order_service.create_order(
            {"items": [{"sku_id": sku.id, "quantity": 2}]}, actor_user_id=staff_user.id
        )

        assert _stock(db_session, sku.id) == 3
        entry = (
            db_session.query(StockHistory)
            .filter_by(sku_id=sku.id, reference_order_id=order.id)
            .one()
        )
        assert entry.change == -2
        assert entry.reason == f"order:{order.order_number}"
        assert entry.changed_by_user_id == staff_user.id
        assert order.created_by_user_id == staff_user.id

    def test_second_item_short_rolls_back_everything(self, db_session, make_sku):
        a = make_sku(stock=5, price_cents=1000)
        b = make_sku(stock=1, price_cents=2000)

        with pytest.raises(InsufficientStockError):
            order_service.create_order({
                "items": [{"sku_id": a.id, "quantity": 3}, {"sku_id": b.id, "quantity": 2}],
            })

        assert _stock(db_session, a.id) == 5
        assert _stock(db_session, b.id) == 1
        assert db_session.query(Order).count() == 0
        assert db_session.query(StockHistory).filter(StockHistory.reason.like("order:%")).count() == 0

    def test_unknown_sku_rolls_back(self, db_session, make_sku):
        a = make_sku(stock=5)

        with pytest.raises(SkuNotFoundError):
            order_service.create_order({
                "items": [{"sku_id": a.id, "quantity": 1}, {"sku_id": 9999, "quantity": 1}],
            })

        assert _stock(db_session, a.id) == 5
        assert db_session.query(Order).count() == 0

    def test_same_sku_twice_cannot_overdraw(self, db_session, make_sku):
        sku = make_sku(stock=3)

        with pytest.raises(InsufficientStockError):
            order_service.create_order({
                "items": [{"sku_id": sku.id, "quantity": 2}, {"sku_id": sku.id, "quantity": 2}],
            })

        assert _stock(db_session, sku.id) == 3


# =============================================================================
# VALIDATION AND DEFAULTS
# =============================================================================


class TestOrderValidation:

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {},
            {"items": []},
            {"items": "nope"},
            {"items": [{"quantity": 1}]},
            {"items": [{"sku_id": 1, "quantity": 0}]},
            {"items": [{"sku_id": 1, "quantity": -2}]},
            {"items": [{"sku_id": 1, "quantity": 1.5}]},
            {"items": [{"sku_id": 1, "quantity": "two"}]},
            {"items": [{"sku_id": 1, "quantity": 1}], "tax_cents": -1},
            {"items": [{"sku_id": 1, "quantity": 1}], "tax_rate": -0.1},
            {"items": [{"sku_id": 1, "quantity": 1}], "tax_rate": "ten"},
            {"items": [{"sku_id": 1, "quantity": 10**20}]},
            {"items": [{"sku_id": 1, "quantity": 1}], "tax_cents": 10**20},
        ],
    )
    def test_rejects_bad_payload(self, db_session, payload):
        with pytest.raises(InvalidInputError):
            order_service.create_order(payload)

    def test_bad_item_reports_index(self, db_session, make_sku):
        sku = make_sku(stock=5)
        with pytest.raises(InvalidInputError) as exc_info:
            order_service.create_order({
                "items": [{"sku_id": sku.id, "quantity": 1}, {"sku_id": sku.id, "quantity": 0}],
            })
        assert exc_info.value.details == {"index": 1}
        assert _stock(db_session, sku.id) == 5

    def test_walk_in_customer_by_default(self, db_session, make_sku):
        sku = make_sku(stock=5)
        order = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]})
        assert order.customer_name == "Walk-in"
        assert order.customer_phone is None

    def test_customer_fields_trimmed(self, db_session, make_sku):
        sku = make_sku(stock=5)
        order = order_service.create_order({
            "items": [{"sku_id": sku.id, "quantity": 1}],
            "customer": {"name": "  Asha  ", "phone": " 555-0100 ", "email": ""},
        })
        assert order.customer_name == "Asha"
        assert order.customer_phone == "555-0100"
        assert order.customer_email is None

    def test_order_number_format(self, db_session, make_sku):
        sku = make_sku(stock=5)
        order = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]})
        assert re.fullmatch(r"ORD-\d{14}-[0-9A-F]{8}", order.order_number)
        assert order.status == "completed"

    def test_generate_order_number_uses_timestamp(self):
        number = order_service.generate_order_number(datetime(2026, 1, 2, 15, 30, 45))
        assert number.startswith("ORD-20260102153045-")


# =============================================================================
# READS
# =============================================================================


class TestOrderReads:

    def test_get_order_not_found(self, db_session):
        with pytest.raises(OrderNotFoundError):
            order_service.get_order(4242)

    def test_list_orders_filters_by_creator(self, db_session, make_sku, admin_user, staff_user):
        sku = make_sku(stock=10)
        order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]}, actor_user_id=admin_user.id)
        mine = order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]}, actor_user_id=staff_user.id)

        result = order_service.list_orders(created_by=staff_user.id)

        assert result["count"] == 1
        assert result["items"][0]["id"] == mine.id
        assert result["pagination"]["total"] == 1

    def test_list_orders_paginates_newest_first(self, db_session, make_sku):
        sku = make_sku(stock=10)
        ids = [order_service.create_order({"items": [{"sku_id": sku.id, "quantity": 1}]}).id for _ in range(3)]

        page_one = order_service.list_orders(page=1, per_page=2)
        page_two = order_service.list_orders(page=2, per_page=2)

        assert [o["id"] for o in page_one["items"]] == [ids[2], ids[1]]
        assert [o["id"] for o in page_two["items"]] == [ids[0]]
        assert page_one["pagination"]["has_next"] is True

    def test_list_orders_rejects_inverted_range(self, db_session):
        with pytest.raises(InvalidInputError):
            order_service.list_orders(start="2026-02-01", end="2026-01-01")

    def test_list_orders_rejects_unknown_status(self, db_session):
        with pytest.raises(InvalidInputError):
            order_service.list_orders(status="shipped")
