# Overview: Pytest coverage for the product aggregate: create, update, listing and soft delete.

"""
Product service tests.

Verifies:
- Create/update write product, images and attributes as one unit
- Images/attributes: None keeps the current set, a list replaces it
- Soft-deleted products disappear from every default read path
- Listing filters, sorting, pagination and totals
- A storage failure mid-aggregate persists nothing
"""

from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from mall.errors import InvalidArgumentError, NotFoundError, StorageFailureError
from mall.models import Brand, Product, ProductAttribute, ProductImage


def _ids(items):
    return [item["id"] for item in items]


class TestCreateProduct:

    def test_creates_draft_with_images_and_attributes(self, product, merchant_user, category):
        assert product["status"] == "draft"
        assert product["merchant_id"] == merchant_user.id
        assert product["category"]["id"] == category.id
        assert product["price"] == Decimal("19.99")
        assert [img["url"] for img in product["images"]] == [
            "https://img.test/a.jpg",
            "https://img.test/b.jpg",
        ]
        assert [img["is_main"] for img in product["images"]] == [True, False]
        assert product["attributes"][0]["attr_name"] == "Color"
        assert product["sold_count"] == 0

    @pytest.mark.parametrize("missing", ["name", "category_id", "price"])
    def test_required_fields(self, product_service, category, merchant_user, missing):
        patch = {"name": "X", "category_id": category.id, "price": Decimal("1.00")}
        del patch[missing]
        with pytest.raises(InvalidArgumentError):
            product_service.create_product(merchant_id=merchant_user.id, patch=patch)

    def test_negative_price_rejected(self, product_service, category, merchant_user):
        with pytest.raises(InvalidArgumentError):
            product_service.create_product(
                merchant_id=merchant_user.id,
                patch={"name": "X", "category_id": category.id, "price": Decimal("-1")},
            )

    def test_unknown_category(self, product_service, merchant_user):
        with pytest.raises(NotFoundError):
            product_service.create_product(
                merchant_id=merchant_user.id,
                patch={"name": "X", "category_id": 9999, "price": Decimal("1.00")},
            )

    def test_unknown_brand(self, product_service, category, merchant_user):
        with pytest.raises(NotFoundError):
            product_service.create_product(
                merchant_id=merchant_user.id,
                patch={"name": "X", "category_id": category.id, "price": Decimal("1.00"), "brand_id": 9999},
            )

    def test_failure_mid_aggregate_persists_nothing(self, db_session, product_service, category, merchant_user):
        def explode(mapper, connection, target):
            raise OperationalError("INSERT INTO product_attributes", {}, Exception("simulated"))

        event.listen(ProductAttribute, "before_insert", explode)
        try:
            with pytest.raises(StorageFailureError):
                product_service.create_product(
                    merchant_id=merchant_user.id,
                    patch={"name": "Doomed", "category_id": category.id, "price": Decimal("5.00")},
                    images=["https://img.test/doomed.jpg"],
                    attributes=[{"attr_name": "Size", "attr_value": "L"}],
                )
        finally:
            event.remove(ProductAttribute, "before_insert", explode)

        assert db_session.query(Product).count() == 0
        assert db_session.query(ProductImage).count() == 0
        assert db_session.query(ProductAttribute).count() == 0


class TestUpdateProduct:

    def test_none_keeps_images_and_attributes(self, product_service, product):
        updated = product_service.update_product(product["id"], patch={"name": "Renamed"})

        assert updated["name"] == "Renamed"
        assert len(updated["images"]) == 2
        assert len(updated["attributes"]) == 1

    def test_list_replaces_images(self, db_session, product_service, product):
        updated = product_service.update_product(
            product["id"], patch={}, images=["https://img.test/c.jpg"], attributes=[]
        )

        assert [img["url"] for img in updated["images"]] == ["https://img.test/c.jpg"]
        assert updated["images"][0]["is_main"] is True
        assert updated["attributes"] == []
        assert db_session.query(ProductImage).count() == 1

    def test_null_category_rejected(self, product_service, product):
        with pytest.raises(InvalidArgumentError):
            product_service.update_product(product["id"], patch={"category_id": None})

    def test_missing_product(self, product_service):
        with pytest.raises(NotFoundError):
            product_service.update_product(9999, patch={"name": "Ghost"})

    def test_min_stock_above_max_stock_rejected(self, product_service, product):
        with pytest.raises(InvalidArgumentError):
            product_service.update_product(product["id"], patch={"min_stock": 10, "max_stock": 5})

    def test_partial_stock_bounds_checked_against_stored_values(self, product_service, make_product):
        bounded = make_product(min_stock=5, max_stock=20)

        with pytest.raises(InvalidArgumentError):
            product_service.update_product(bounded["id"], patch={"min_stock": 30})
        with pytest.raises(InvalidArgumentError):
            product_service.update_product(bounded["id"], patch={"max_stock": 3})

        updated = product_service.update_product(bounded["id"], patch={"min_stock": 20})
        assert (updated["min_stock"], updated["max_stock"]) == (20, 20)

    def test_failure_mid_update_keeps_previous_state(self, db_session, product_service, product):
        def explode(mapper, connection, target):
            raise OperationalError("INSERT INTO product_attributes", {}, Exception("simulated"))

        event.listen(ProductAttribute, "before_insert", explode)
        try:
            with pytest.raises(StorageFailureError):
                product_service.update_product(
                    product["id"],
                    patch={"name": "Doomed"},
                    images=["https://img.test/doomed.jpg"],
                    attributes=[{"attr_name": "Size", "attr_value": "L"}],
                )
        finally:
            event.remove(ProductAttribute, "before_insert", explode)

        db_session.expire_all()
        current = product_service.get_product(product["id"], count_view=False)
        assert current["name"] == "Widget"
        assert [img["url"] for img in current["images"]] == [
            "https://img.test/a.jpg",
            "https://img.test/b.jpg",
        ]
        assert [(a["attr_name"], a["attr_value"]) for a in current["attributes"]] == [("Color", "Red")]
        assert db_session.query(ProductImage).count() == 2
        assert db_session.query(ProductAttribute).count() == 1


class TestSoftDelete:

    def test_deleted_product_hidden(self, product_service, product):
        product_service.delete_product(product["id"])

        with pytest.raises(NotFoundError):
            product_service.get_product(product["id"])
        items, total = product_service.list_products()
        assert total == 0 and items == []

        kept = product_service.get_product(product["id"], include_deleted=True, count_view=False)
        assert kept["deleted_at"] is not None

        items, total = product_service.list_products(include_deleted=True)
        assert _ids(items) == [product["id"]]

    def test_delete_twice(self, product_service, product):
        product_service.delete_product(product["id"])
        with pytest.raises(NotFoundError):
            product_service.delete_product(product["id"])


class TestStatus:

    def test_update_status(self, product_service, product):
        assert product_service.update_status(product["id"], "active")["status"] == "active"

    def test_invalid_status(self, product_service, product):
        with pytest.raises(InvalidArgumentError):
            product_service.update_status(product["id"], "archived")

    def test_batch_skips_deleted(self, product_service, make_product):
        a, b, c = make_product(name="A"), make_product(name="B"), make_product(name="C")
        product_service.delete_product(c["id"])

        updated = product_service.batch_update_status([a["id"], b["id"], c["id"]], "active")

        assert updated == 2
        items, _ = product_service.list_products(status="active")
        assert sorted(_ids(items)) == sorted([a["id"], b["id"]])

    def test_batch_empty_rejected(self, product_service):
        with pytest.raises(InvalidArgumentError):
            product_service.batch_update_status([], "active")


class TestListProducts:

    def test_filters(self, db_session, product_service, make_product, other_merchant):
        brand = Brand(name="Globex")
        db_session.add(brand)
        db_session.commit()

        cheap = make_product(name="Cheap phone", price="9.50", is_hot=True)
        mid = make_product(name="Mid phone", price="100.00", brand_id=brand.id, description="great value")
        make_product(name="Luxury", price="999.99", merchant_id=other_merchant.id)

        assert _ids(product_service.list_products(is_hot=True)[0]) == [cheap["id"]]
        assert _ids(product_service.list_products(brand_id=brand.id)[0]) == [mid["id"]]
        assert product_service.list_products(merchant_id=other_merchant.id)[1] == 1
        assert _ids(product_service.list_products(keyword="value")[0]) == [mid["id"]]
        assert _ids(product_service.list_products(keyword="phone", sort_by="price_asc")[0]) == [
            cheap["id"], mid["id"],
        ]
        items, total = product_service.list_products(min_price=Decimal("10"), max_price=Decimal("500"))
        assert _ids(items) == [mid["id"]] and total == 1

    def test_keyword_wildcards_are_literal(self, product_service, make_product):
        make_product(name="100% cotton")
        make_product(name="1000 cotton")
        items, _ = product_service.list_products(keyword="100%")
        assert [i["name"] for i in items] == ["100% cotton"]

    def test_sorting(self, product_service, make_product):
        a = make_product(name="A", price="30.00")
        b = make_product(name="B", price="10.00")
        c = make_product(name="C", price="20.00")

        by_price = product_service.list_products(sort_by="price_desc")[0]
        assert _ids(by_price) == [a["id"], c["id"], b["id"]]

        # Default: sort ASC then id DESC
        assert _ids(product_service.list_products()[0]) == [c["id"], b["id"], a["id"]]
        assert _ids(product_service.list_products(sort_by="nonsense")[0]) == [c["id"], b["id"], a["id"]]

    def test_pagination_total_is_independent_of_page(self, product_service, make_product):
        for i in range(5):
            make_product(name=f"P{i}")

        items, total = product_service.list_products(page=2, page_size=2)
        assert total == 5
        assert len(items) == 2

        items, total = product_service.list_products(page=3, page_size=2)
        assert total == 5
        assert len(items) == 1

    def test_items_carry_main_image_only(self, product_service, product):
        items, _ = product_service.list_products()
        assert items[0]["main_image"] == "https://img.test/a.jpg"
        assert "images" not in items[0]

    def test_invalid_status_filter(self, product_service):
        with pytest.raises(InvalidArgumentError):
            product_service.list_products(status="gone")


class TestCatalogReads:

    def test_flagged_lists_only_active(self, product_service, make_product):
        hot_active = make_product(name="Hot", is_hot=True, is_new=True, is_recommend=True)
        make_product(name="Hot draft", is_hot=True)
        product_service.update_status(hot_active["id"], "active")

        assert _ids(product_service.get_hot_products()) == [hot_active["id"]]
        assert _ids(product_service.get_new_products()) == [hot_active["id"]]
        assert _ids(product_service.get_recommend_products()) == [hot_active["id"]]

    def test_by_category_and_brand(self, product_service, make_product, brand, category):
        active = make_product(name="Active", brand_id=brand.id)
        make_product(name="Draft", brand_id=brand.id)
        product_service.update_status(active["id"], "active")

        items, total = product_service.get_products_by_category(category.id)
        assert _ids(items) == [active["id"]] and total == 1
        items, total = product_service.get_products_by_brand(brand.id)
        assert _ids(items) == [active["id"]] and total == 1

        with pytest.raises(NotFoundError):
            product_service.get_products_by_category(9999)
        with pytest.raises(NotFoundError):
            product_service.get_products_by_brand(9999)

    def test_get_product_counts_views(self, product_service, product):
        product_service.get_product(product["id"])
        product_service.get_product(product["id"])
        seen = product_service.get_product(product["id"], count_view=False)
        assert seen["view_count"] == 2

    def test_view_count_failure_still_returns_product(self, db_session, product_service, product):
        def fail_view_count(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("UPDATE products SET view_count"):
                raise OperationalError(statement, parameters, Exception("simulated"))

        engine = db_session.get_bind()
        event.listen(engine, "before_cursor_execute", fail_view_count)
        try:
            seen = product_service.get_product(product["id"])
        finally:
            event.remove(engine, "before_cursor_execute", fail_view_count)

        assert seen["id"] == product["id"]
        assert seen["name"] == "Widget"
        assert product_service.get_product(product["id"], count_view=False)["view_count"] == 0

    def test_statistics(self, product_service, make_product, other_merchant):
        a = make_product(name="A", stock=0)
        make_product(name="B", stock=3, min_stock=5)
        make_product(name="C", stock=50, min_stock=5)
        make_product(name="D", stock=7, merchant_id=other_merchant.id)
        product_service.update_status(a["id"], "active")

        stats = product_service.get_product_statistics()
        assert stats["total_products"] == 4
        assert stats["status_counts"] == {"draft": 3, "active": 1, "inactive": 0}
        assert stats["total_stock"] == 60
        assert stats["low_stock_count"] == 1
        assert stats["out_of_stock_count"] == 1

        mine = product_service.get_product_statistics(merchant_id=other_merchant.id)
        assert mine["total_products"] == 1
        assert mine["total_stock"] == 7
