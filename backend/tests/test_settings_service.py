import unittest

from riom import create_app
from riom.extensions import db
from riom.errors import InvalidInputError
from riom.models import AppSettings, Product, Sku, StockHistory
from riom.services import settings_service, stock_service
from riom.services.products_service import create_product
from riom.services.sku_service import create_sku, update_sku


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "TESTING": True,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StockHistory).delete()
        db.session.query(Sku).delete()
        db.session.query(Product).delete()
        db.session.query(AppSettings).delete()
        db.session.commit()

    def test_get_settings_creates_row_lazily(self):
        self.assertIsNone(db.session.get(AppSettings, "global"))
        settings = settings_service.get_settings()
        self.assertEqual(settings.default_reorder_threshold, 0)
        self.assertEqual(settings.currency, "INR")
        self.assertIsNotNone(db.session.get(AppSettings, "global"))

    def test_default_threshold_without_row(self):
        self.assertEqual(settings_service.get_default_reorder_threshold(), 0)

    def test_init_is_idempotent(self):
        first = settings_service.init_settings_if_missing()
        second = settings_service.init_settings_if_missing()
        db.session.commit()
        self.assertIs(first, second)
        self.assertEqual(db.session.query(AppSettings).count(), 1)

    def test_update_threshold_and_currency(self):
        settings = settings_service.update_settings(
            {"default_reorder_threshold": 4, "currency": " usd "}, user_id=None
        )
        self.assertEqual(settings.default_reorder_threshold, 4)
        self.assertEqual(settings.currency, "USD")
        self.assertEqual(settings_service.get_default_reorder_threshold(), 4)

    def test_update_rejects_bad_values(self):
        for payload in (
            {"default_reorder_threshold": -1},
            {"default_reorder_threshold": "3"},
            {"default_reorder_threshold": True},
            {"currency": "EURO"},
            {"currency": ""},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(InvalidInputError):
                    settings_service.update_settings(payload)

    def test_update_rejects_non_object(self):
        with self.assertRaises(InvalidInputError):
            settings_service.update_settings(["nope"])


class LowStockTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "TESTING": True,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StockHistory).delete()
        db.session.query(Sku).delete()
        db.session.query(Product).delete()
        db.session.query(AppSettings).delete()
        db.session.commit()

        self.product = create_product({"name": "Socks", "category": "Apparel", "base_price_cents": 300})

    def _sku(self, code, stock, threshold=None):
        payload = {"product_id": self.product.id, "sku": code, "price_cents": 300, "stock": stock}
        if threshold is not None:
            payload["reorder_threshold"] = threshold
        return create_sku(payload)

    def test_at_or_below_threshold(self):
        self._sku("SOCK-A", stock=5, threshold=5)
        self._sku("SOCK-B", stock=2, threshold=5)
        self._sku("SOCK-C", stock=6, threshold=5)

        rows = stock_service.find_low_stock(default_threshold=0)

        self.assertEqual([r["sku"] for r in rows], ["SOCK-B", "SOCK-A"])
        self.assertEqual(rows[0]["product_name"], "Socks")
        self.assertEqual(rows[0]["reorder_threshold"], 5)

    def test_missing_threshold_uses_default(self):
        sku = self._sku("SOCK-D", stock=3, threshold=1)
        update_sku(sku.id, {"reorder_threshold": None})

        self.assertEqual(stock_service.find_low_stock(default_threshold=2), [])
        rows = stock_service.find_low_stock(default_threshold=3)
        self.assertEqual([r["sku"] for r in rows], ["SOCK-D"])
        self.assertEqual(rows[0]["reorder_threshold"], 3)

    def test_default_read_from_settings(self):
        sku = self._sku("SOCK-E", stock=4, threshold=0)
        update_sku(sku.id, {"reorder_threshold": None})

        self.assertEqual(stock_service.find_low_stock(), [])
        settings_service.update_settings({"default_reorder_threshold": 10})
        self.assertEqual(len(stock_service.find_low_stock()), 1)

    def test_equal_stock_sorted_by_code(self):
        self._sku("ZZZ", stock=2, threshold=5)
        self._sku("AAA", stock=2, threshold=5)

        rows = stock_service.find_low_stock(default_threshold=0)

        self.assertEqual([r["sku"] for r in rows], ["AAA", "ZZZ"])

    def test_repeated_reads_agree(self):
        self._sku("SOCK-G", stock=1, threshold=5)
        self._sku("SOCK-H", stock=1, threshold=5)
        self._sku("SOCK-I", stock=9, threshold=5)

        first = stock_service.find_low_stock()
        second = stock_service.find_low_stock()

        self.assertEqual(first, second)
        self.assertEqual(len(first), 2)

    def test_sale_pushes_sku_into_report(self):
        sku = self._sku("SOCK-F", stock=10, threshold=5)
        self.assertEqual(stock_service.find_low_stock(default_threshold=0), [])

        stock_service.adjust_stock(sku.id, -10, "order:X")

        rows = stock_service.find_low_stock(default_threshold=0)
        self.assertEqual(rows[0]["stock"], 0)


if __name__ == "__main__":
    unittest.main()
