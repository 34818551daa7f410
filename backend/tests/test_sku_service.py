"""
Catalog tests: products, SKUs, barcodes, search and scan.
"""

import pytest

from riom.errors import (
    BarcodeGenerationError,
    DuplicateBarcodeError,
    DuplicateSkuError,
    InvalidInputError,
    ProductNotFoundError,
    SkuNotFoundError,
)
from riom.models import Product, Sku, StockHistory
from riom.services import identifier_service, products_service, sku_service
from riom.services.settings_service import update_settings


# =============================================================================
# BARCODES
# =============================================================================


class TestBarcodeGeneration:

    def test_first_barcode(self, db_session, make_sku):
        assert make_sku().barcode == "10000001"

    def test_next_barcode_is_max_plus_one(self, db_session, make_sku):
        make_sku()
        make_sku(barcode="20000000")
        make_sku(barcode="ABC-123")

        assert make_sku().barcode == "20000001"

    def test_user_barcode_kept(self, db_session, make_sku):
        assert make_sku(barcode=" 4006381333931 ").barcode == "4006381333931"

    def test_blank_barcode_is_generated(self, db_session, make_sku):
        assert make_sku(barcode="  ").barcode == "10000001"

    def test_allocation_gives_up_after_bounded_attempts(self, db_session, monkeypatch):
        monkeypatch.setattr(identifier_service, "barcode_exists", lambda value: True)
        with pytest.raises(BarcodeGenerationError) as exc_info:
            identifier_service.allocate_barcode()
        assert exc_info.value.status_code == 500


# =============================================================================
# SKU CREATION
# =============================================================================


class TestCreateSku:

    def test_defaults(self, db_session, make_sku):
        sku = make_sku()
        assert sku.stock == 0
        assert sku.attributes == {}
        assert sku.reorder_threshold == 0

    def test_threshold_defaults_to_setting(self, db_session, make_sku):
        update_settings({"default_reorder_threshold": 7})
        assert make_sku().reorder_threshold == 7
        assert make_sku(reorder_threshold=2).reorder_threshold == 2

    def test_attributes_are_stringified(self, db_session, make_sku):
        sku = make_sku(attributes={" size ": " M ", "waist": 32, "note": None})
        assert sku.attributes == {"size": "M", "waist": "32"}

    def test_sku_count_incremented(self, db_session, product, make_sku):
        make_sku()
        make_sku()
        assert db_session.get(Product, product.id, populate_existing=True).sku_count == 2

    def test_duplicate_code(self, db_session, make_sku):
        make_sku(sku="CAP-RED")
        with pytest.raises(DuplicateSkuError) as exc_info:
            make_sku(sku="CAP-RED")
        assert exc_info.value.status_code == 409

    def test_duplicate_barcode(self, db_session, make_sku):
        make_sku(barcode="555")
        with pytest.raises(DuplicateBarcodeError):
            make_sku(barcode="555")

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            sku_service.create_sku({"product_id": 404, "sku": "X", "price_cents": 1})

    @pytest.mark.parametrize(
        "payload",
        [
            {"sku": "X", "price_cents": 100},
            {"product_id": 1, "price_cents": 100},
            {"product_id": 1, "sku": "X"},
            {"product_id": 1, "sku": "X", "price_cents": -1},
            {"product_id": 1, "sku": "X", "price_cents": 10.5},
            {"product_id": 1, "sku": "X", "price_cents": 100, "stock": -3},
            {"product_id": 1, "sku": "X", "price_cents": 100, "stock": 10**20},
            {"product_id": 1, "sku": "X", "price_cents": 100, "stock": 2**31},
            {"product_id": 1, "sku": "X", "price_cents": 100, "reorder_threshold": 10**20},
            {"product_id": 1, "sku": "X", "price_cents": 100, "reorder_threshold": -1},
            {"product_id": 1, "sku": "X", "price_cents": 100, "version_id": 9},
            {"product_id": 1, "sku": "   ", "price_cents": 100},
        ],
    )
    def test_invalid_payload(self, db_session, payload):
        with pytest.raises(InvalidInputError):
            sku_service.create_sku(payload)


# =============================================================================
# PRODUCT CASCADE
# =============================================================================


class TestCreateProductWithSkus:

    def test_creates_skus_with_initial_stock(self, db_session):
        product = products_service.create_product(
            {"name": "Jeans", "category": "Apparel", "base_price_cents": 4000},
            skus=[
                {"sku": "JEANS-32", "price_cents": 4000, "stock": 3, "attributes": {"waist": "32"}},
                {"sku": "JEANS-34", "price_cents": 4200, "stock": 2},
            ],
        )

        product = db_session.get(Product, product.id, populate_existing=True)
        assert product.sku_count == 2
        assert product.total_stock == 5
        assert [s.barcode for s in sorted(product.skus, key=lambda s: s.id)] == ["10000001", "10000002"]
        assert db_session.query(StockHistory).filter_by(product_id=product.id).count() == 2

    def test_bad_sku_blocks_product(self, db_session):
        with pytest.raises(InvalidInputError):
            products_service.create_product(
                {"name": "Jeans", "category": "Apparel", "base_price_cents": 4000},
                skus=[{"sku": "JEANS-32", "price_cents": 4000}, {"sku": "JEANS-34"}],
            )
        assert db_session.query(Product).count() == 0

    def test_duplicate_sku_blocks_product(self, db_session, make_sku):
        make_sku(sku="JEANS-32")
        with pytest.raises(DuplicateSkuError):
            products_service.create_product(
                {"name": "Jeans", "category": "Apparel", "base_price_cents": 4000},
                skus=[{"sku": "JEANS-32", "price_cents": 4000, "stock": 1}],
            )
        assert db_session.query(Product).filter_by(name="Jeans").count() == 0

    def test_required_product_fields(self, db_session):
        with pytest.raises(InvalidInputError):
            products_service.create_product({"name": "Nameless"})

    def test_deactivate_is_soft(self, db_session, product):
        products_service.deactivate_product(product.id)
        assert db_session.get(Product, product.id).is_active is False
        assert products_service.list_products(is_active=False)["count"] == 1


# =============================================================================
# UPDATES, LOOKUP AND SEARCH
# =============================================================================


class TestSkuLookup:

    def test_update_cannot_touch_stock(self, db_session, make_sku):
        sku = make_sku(stock=4)
        with pytest.raises(InvalidInputError):
            sku_service.update_sku(sku.id, {"stock": 100})

    def test_update_price_and_attributes(self, db_session, make_sku):
        sku = make_sku(stock=4)
        updated = sku_service.update_sku(sku.id, {"price_cents": 1500, "attributes": {"color": "red"}})
        assert updated.price_cents == 1500
        assert updated.attributes == {"color": "red"}
        assert updated.stock == 4

    def test_update_duplicate_barcode(self, db_session, make_sku):
        make_sku(barcode="111")
        other = make_sku(barcode="222")
        with pytest.raises(DuplicateBarcodeError):
            sku_service.update_sku(other.id, {"barcode": "111"})

    def test_get_unknown_sku(self, db_session):
        with pytest.raises(SkuNotFoundError):
            sku_service.get_sku(31337)

    def test_scan_is_case_insensitive(self, db_session, make_sku):
        make_sku(barcode="AbC-9")
        found = sku_service.find_by_barcode("  abc-9 ")
        assert found["barcode"] == "AbC-9"
        assert found["product_name"] == "T-Shirt"

    @pytest.mark.parametrize("barcode", [None, "", "   ", "nope"])
    def test_scan_miss(self, db_session, make_sku, barcode):
        make_sku()
        assert sku_service.find_by_barcode(barcode) is None

    def test_search_matches_code_name_and_attribute_values(self, db_session, make_sku):
        make_sku(sku="TEE-RED-M", attributes={"color": "Red", "size": "M"})
        make_sku(sku="TEE-BLU-L", attributes={"color": "Blue", "size": "L"})

        assert [r["sku"] for r in sku_service.search_skus("red")] == ["TEE-RED-M"]
        assert [r["sku"] for r in sku_service.search_skus("BLUE")] == ["TEE-BLU-L"]
        assert len(sku_service.search_skus("t-shirt")) == 2

    def test_search_ignores_attribute_keys(self, db_session, make_sku):
        make_sku(sku="TEE-1", attributes={"color": "Red"})
        assert sku_service.search_skus("color") == []

    def test_search_empty_query(self, db_session, make_sku):
        make_sku()
        assert sku_service.search_skus("   ") == []
        assert sku_service.search_skus(None) == []

    def test_search_is_limited(self, db_session, make_sku):
        for _ in range(12):
            make_sku()
        assert len(sku_service.search_skus("TSHIRT")) == 10

    def test_list_filters_by_product(self, db_session, product, make_sku):
        make_sku()
        make_sku()
        other = products_service.create_product({"name": "Hat", "category": "Apparel", "base_price_cents": 500})
        sku_service.create_sku({"product_id": other.id, "sku": "HAT-1", "price_cents": 500})

        result = sku_service.list_skus(product_id=product.id)
        assert result["count"] == 2
        assert all(item["product_id"] == product.id for item in result["items"])
        assert db_session.query(Sku).count() == 3
