# Overview: Service-layer operations for products; owns the product aggregate (product + images + attributes).

"""
Product Catalog Service

AGGREGATE: a product row, its ordered images and its ordered attributes.
Creates and updates write all three in one transaction; a failure at any
step rolls everything back, so readers never see a partial product.

IMAGES / ATTRIBUTES ON UPDATE:
Full replace, not merge. Passing a list (even an empty one) discards the
current set and inserts the new one; passing None leaves it untouched.
The first image of a list is the main image.

SOFT DELETE:
delete_product() sets deleted_at. Every read takes include_deleted and
defaults to excluding deleted rows.

STOCK:
Stock columns are written here only as part of create/update input.
Concurrent deductions go through StockController.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InvalidArgumentError, NotFoundError
from ..models import (
    Brand,
    Category,
    Product,
    ProductAttribute,
    ProductImage,
    User,
    PRODUCT_STATUS_ACTIVE,
    PRODUCT_STATUS_DRAFT,
    PRODUCT_STATUSES,
)
from ..validation import (
    PRODUCT_WRITABLE_FIELDS,
    enforce_rules_product,
    enforce_stock_bounds,
    validate_status,
)
from .concurrency import atomic, storage_errors
from mall.time_utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = PRODUCT_WRITABLE_FIELDS

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SORT_ORDERS = {
    "price_asc": (Product.price.asc(), Product.id.desc()),
    "price_desc": (Product.price.desc(), Product.id.desc()),
    "sales_desc": (Product.sold_count.desc(), Product.id.desc()),
    "created_desc": (Product.created_at.desc(), Product.id.desc()),
}
DEFAULT_SORT = (Product.sort.asc(), Product.id.desc())


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _build_images(urls: list[str]) -> list[ProductImage]:
    return [ProductImage(url=url, sort=i, is_main=(i == 0)) for i, url in enumerate(urls)]


def _build_attributes(attributes: list[dict]) -> list[ProductAttribute]:
    return [
        ProductAttribute(
            attr_name=attr["attr_name"],
            attr_value=attr["attr_value"],
            sort=attr.get("sort", i),
        )
        for i, attr in enumerate(attributes)
    ]


def _not_deleted(query, include_deleted: bool):
    if include_deleted:
        return query
    return query.filter(Product.deleted_at.is_(None))


class ProductService:
    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, product_id: int, *, include_deleted: bool = False) -> Product:
        query = _not_deleted(self.session.query(Product).filter(Product.id == product_id), include_deleted)
        product = query.first()
        if product is None:
            raise NotFoundError(f"Product not found (product_id={product_id})")
        return product

    def _require_category(self, category_id) -> Category:
        category = (
            self.session.query(Category)
            .filter(Category.id == category_id, Category.deleted_at.is_(None))
            .first()
        )
        if category is None:
            raise NotFoundError(f"Category not found (category_id={category_id})")
        return category

    def _require_brand(self, brand_id) -> Brand:
        brand = (
            self.session.query(Brand)
            .filter(Brand.id == brand_id, Brand.deleted_at.is_(None))
            .first()
        )
        if brand is None:
            raise NotFoundError(f"Brand not found (brand_id={brand_id})")
        return brand

    def _require_merchant(self, merchant_id) -> User:
        merchant = self.session.query(User).filter(User.id == merchant_id).first()
        if merchant is None:
            raise NotFoundError(f"Merchant not found (merchant_id={merchant_id})")
        return merchant

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_product(
        self,
        *,
        merchant_id: int,
        patch: dict,
        images: list[str] | None = None,
        attributes: list[dict] | None = None,
    ) -> dict:
        """
        Create a draft product with its images and attributes.

        Raises:
            InvalidArgumentError: missing name/category_id/price or rule violation
            NotFoundError: category, brand or merchant does not exist
            StorageFailureError: any storage error (nothing is persisted)
        """
        for key in ("name", "category_id", "price"):
            if patch.get(key) is None:
                raise InvalidArgumentError(f"{key} is required")
        enforce_rules_product(patch)

        with storage_errors(self.session, "create_product", merchant_id=merchant_id):
            self._require_category(patch["category_id"])
            if patch.get("brand_id") is not None:
                self._require_brand(patch["brand_id"])
            self._require_merchant(merchant_id)

            with atomic(self.session):
                product = Product(merchant_id=merchant_id, status=PRODUCT_STATUS_DRAFT)
                apply_product_patch(product, patch)
                self.session.add(product)
                self.session.flush()

                product.images = _build_images(images or [])
                product.attributes = _build_attributes(attributes or [])
                self.session.flush()
                product_id = product.id

            logger.info("Created product id=%s merchant_id=%s", product_id, merchant_id)
            return self._get(product_id).to_dict()

    def update_product(
        self,
        product_id: int,
        *,
        patch: dict,
        images: list[str] | None = None,
        attributes: list[dict] | None = None,
    ) -> dict:
        """
        Update fields and optionally replace images/attributes, atomically.

        Raises:
            NotFoundError: product (or a newly referenced category/brand) missing
            StorageFailureError: any storage error (nothing is persisted)
        """
        enforce_rules_product(patch)

        with storage_errors(self.session, "update_product", product_id=product_id):
            product = self._get(product_id)
            if patch.get("category_id") is not None:
                self._require_category(patch["category_id"])
            elif "category_id" in patch:
                raise InvalidArgumentError("category_id cannot be null")
            if patch.get("brand_id") is not None:
                self._require_brand(patch["brand_id"])
            if "min_stock" in patch or "max_stock" in patch:
                enforce_stock_bounds(
                    patch.get("min_stock", product.min_stock),
                    patch.get("max_stock", product.max_stock),
                )

            with atomic(self.session):
                apply_product_patch(product, patch)
                if images is not None:
                    product.images = _build_images(images)
                if attributes is not None:
                    product.attributes = _build_attributes(attributes)
                self.session.flush()

            return self._get(product_id).to_dict()

    def delete_product(self, product_id: int) -> None:
        """Soft delete. Raises NotFoundError if absent or already deleted."""
        with storage_errors(self.session, "delete_product", product_id=product_id):
            product = self._get(product_id)
            with atomic(self.session):
                product.deleted_at = utcnow()
        logger.info("Soft-deleted product id=%s", product_id)

    def update_status(self, product_id: int, status: str) -> dict:
        validate_status(status)
        with storage_errors(self.session, "update_status", product_id=product_id):
            product = self._get(product_id)
            with atomic(self.session):
                product.status = status
            return self._get(product_id).to_dict(include_relations=False)

    def batch_update_status(self, product_ids: list[int], status: str) -> int:
        """Set status on every non-deleted product in product_ids. Returns rows updated."""
        if not product_ids:
            raise InvalidArgumentError("product_ids cannot be empty")
        validate_status(status)
        with storage_errors(self.session, "batch_update_status", count=len(product_ids)):
            with atomic(self.session):
                updated = (
                    self.session.query(Product)
                    .filter(Product.id.in_(product_ids), Product.deleted_at.is_(None))
                    .update({Product.status: status}, synchronize_session=False)
                )
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _increment_view_count(self, product_id: int) -> None:
        """Best-effort. A failure is logged and never reaches the reader."""
        try:
            self.session.query(Product).filter(Product.id == product_id).update(
                {Product.view_count: Product.view_count + 1}, synchronize_session=False
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.warning("Failed to increment view_count for product id=%s", product_id, exc_info=True)

    def get_product(self, product_id: int, *, include_deleted: bool = False, count_view: bool = True) -> dict:
        """Product with category, brand, images and attributes."""
        with storage_errors(self.session, "get_product", product_id=product_id):
            data = self._get(product_id, include_deleted=include_deleted).to_dict()
        if count_view:
            self._increment_view_count(product_id)
        return data

    def list_products(
        self,
        *,
        category_id: int | None = None,
        brand_id: int | None = None,
        merchant_id: int | None = None,
        status: str | None = None,
        is_hot: bool | None = None,
        is_new: bool | None = None,
        is_recommend: bool | None = None,
        keyword: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        sort_by: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        include_deleted: bool = False,
    ) -> tuple[list[dict], int]:
        """
        Filtered, sorted, paginated listing.

        total counts every row matching the filters, independent of the page.
        Items carry only the main image URL. Unknown sort keys fall back to
        the default order (sort ASC, id DESC).
        """
        if status is not None and status not in PRODUCT_STATUSES:
            raise InvalidArgumentError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")
        page = max(page or 1, 1)
        page_size = min(max(page_size or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)

        query = _not_deleted(self.session.query(Product), include_deleted)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if brand_id is not None:
            query = query.filter(Product.brand_id == brand_id)
        if merchant_id is not None:
            query = query.filter(Product.merchant_id == merchant_id)
        if status is not None:
            query = query.filter(Product.status == status)
        if is_hot is not None:
            query = query.filter(Product.is_hot.is_(is_hot))
        if is_new is not None:
            query = query.filter(Product.is_new.is_(is_new))
        if is_recommend is not None:
            query = query.filter(Product.is_recommend.is_(is_recommend))
        if keyword:
            query = query.filter(
                Product.name.contains(keyword, autoescape=True)
                | Product.description.contains(keyword, autoescape=True)
            )
        if min_price is not None:
            query = query.filter(Product.price >= min_price)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)

        with storage_errors(self.session, "list_products"):
            total = query.order_by(None).count()
            products = (
                query.order_by(*SORT_ORDERS.get(sort_by, DEFAULT_SORT))
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return [p.to_dict(include_relations=False) for p in products], total

    def _active_flagged(self, flag, order, limit: int, operation: str) -> list[dict]:
        limit = min(max(limit or 10, 1), MAX_PAGE_SIZE)
        with storage_errors(self.session, operation):
            products = (
                self.session.query(Product)
                .filter(
                    Product.deleted_at.is_(None),
                    Product.status == PRODUCT_STATUS_ACTIVE,
                    flag.is_(True),
                )
                .order_by(*order)
                .limit(limit)
                .all()
            )
            return [p.to_dict(include_relations=False) for p in products]

    def get_hot_products(self, limit: int = 10) -> list[dict]:
        return self._active_flagged(
            Product.is_hot, (Product.sold_count.desc(), Product.sort.asc(), Product.id.desc()),
            limit, "get_hot_products",
        )

    def get_new_products(self, limit: int = 10) -> list[dict]:
        return self._active_flagged(
            Product.is_new, (Product.created_at.desc(), Product.sort.asc(), Product.id.desc()),
            limit, "get_new_products",
        )

    def get_recommend_products(self, limit: int = 10) -> list[dict]:
        return self._active_flagged(
            Product.is_recommend, (Product.sort.asc(), Product.created_at.desc(), Product.id.desc()),
            limit, "get_recommend_products",
        )

    def get_products_by_category(self, category_id: int, *, page: int = 1,
                                 page_size: int = DEFAULT_PAGE_SIZE) -> tuple[list[dict], int]:
        """Active products of one category."""
        with storage_errors(self.session, "get_products_by_category", category_id=category_id):
            self._require_category(category_id)
        return self.list_products(category_id=category_id, status=PRODUCT_STATUS_ACTIVE,
                                  page=page, page_size=page_size)

    def get_products_by_brand(self, brand_id: int, *, page: int = 1,
                              page_size: int = DEFAULT_PAGE_SIZE) -> tuple[list[dict], int]:
        """Active products of one brand."""
        with storage_errors(self.session, "get_products_by_brand", brand_id=brand_id):
            self._require_brand(brand_id)
        return self.list_products(brand_id=brand_id, status=PRODUCT_STATUS_ACTIVE,
                                  page=page, page_size=page_size)

    def get_product_statistics(self, merchant_id: int | None = None) -> dict:
        """
        Counts per status and stock totals over non-deleted products.

        Low stock means stock <= min_stock with a configured min_stock.
        """
        filters = [Product.deleted_at.is_(None)]
        if merchant_id is not None:
            filters.append(Product.merchant_id == merchant_id)

        with storage_errors(self.session, "get_product_statistics", merchant_id=merchant_id):
            status_rows = (
                self.session.query(Product.status, func.count(Product.id))
                .filter(*filters)
                .group_by(Product.status)
                .all()
            )
            total_stock, low_stock, out_of_stock, total_sold = (
                self.session.query(
                    func.coalesce(func.sum(Product.stock), 0),
                    func.coalesce(func.sum(case(
                        ((Product.min_stock > 0) & (Product.stock <= Product.min_stock), 1), else_=0)), 0),
                    func.coalesce(func.sum(case((Product.stock == 0, 1), else_=0)), 0),
                    func.coalesce(func.sum(Product.sold_count), 0),
                )
                .filter(*filters)
                .one()
            )

        status_counts = {status: 0 for status in PRODUCT_STATUSES}
        for status, count in status_rows:
            status_counts[status] = int(count)

        return {
            "total_products": sum(status_counts.values()),
            "status_counts": status_counts,
            "total_stock": int(total_stock),
            "low_stock_count": int(low_stock),
            "out_of_stock_count": int(out_of_stock),
            "total_sold": int(total_sold),
        }
