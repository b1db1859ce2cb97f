# Overview: Service-layer operations for stock; concurrency-safe deduct/restore via conditional updates.

"""
Stock Controller

Stock is a mutable counter on the product row. It is changed only by
single-statement conditional UPDATEs so the database decides sufficiency
and applies the change in one step:

    deduct:  SET stock = stock - q, sold_count = sold_count + q
             WHERE id = :id AND stock >= q AND deleted_at IS NULL
    restore: SET stock = stock + q,
                 sold_count = CASE WHEN sold_count >= q THEN sold_count - q ELSE 0 END
             WHERE id = :id AND deleted_at IS NULL

INVARIANTS:
- stock never goes below zero (the WHERE guard, plus a CHECK constraint)
- sold_count never goes below zero (restore clamps)
- no stock value is read first and written later; nothing is cached

ERRORS:
- deduct matching no row -> InsufficientStockError. The same error covers
  "no such product"; callers that need the distinction use get_stock().
- restore/update matching no row -> NotFoundError
- "database is locked" and other OperationalErrors are retried, then
  surfaced as StorageFailureError
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func

from ..errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from ..models import Product
from ..validation import coerce_int, validate_quantity
from .concurrency import run_with_retry, storage_errors

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


def _normalize_items(items) -> list[tuple[int, int]]:
    """
    Accept [(product_id, quantity)] or [{"product_id", "quantity"}].
    Duplicate ids are merged; result is sorted by product_id.
    """
    if not items:
        raise InvalidArgumentError("items cannot be empty")
    merged: dict[int, int] = {}
    for i, item in enumerate(items):
        if isinstance(item, dict):
            product_id, quantity = item.get("product_id"), item.get("quantity")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            product_id, quantity = item
        else:
            raise InvalidArgumentError(f"items[{i}] must be a product_id/quantity pair")
        if product_id is None:
            raise InvalidArgumentError(f"items[{i}].product_id is required")
        product_id = coerce_int(f"items[{i}].product_id", product_id)
        quantity = validate_quantity(quantity, f"items[{i}].quantity")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return sorted(merged.items())


class StockController:
    def __init__(self, session, retry_attempts: int = 3):
        self.session = session
        self.retry_attempts = max(int(retry_attempts), 1)

    def _live(self, product_id: int):
        return self.session.query(Product).filter(
            Product.id == product_id,
            Product.deleted_at.is_(None),
        )

    def _conditional_deduct(self, product_id: int, quantity: int) -> int:
        return (
            self._live(product_id)
            .filter(Product.stock >= quantity)
            .update(
                {
                    Product.stock: Product.stock - quantity,
                    Product.sold_count: Product.sold_count + quantity,
                },
                synchronize_session=False,
            )
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deduct_stock(self, product_id: int, quantity: int) -> None:
        """
        Atomically take quantity out of stock and add it to sold_count.

        Raises InsufficientStockError when the product lacks stock or does
        not exist. Safe to call concurrently for the same product.
        """
        quantity = validate_quantity(quantity)

        def _deduct():
            if self._conditional_deduct(product_id, quantity) == 0:
                self.session.rollback()
                raise InsufficientStockError(product_id, quantity)
            self.session.commit()

        with storage_errors(self.session, "deduct_stock", product_id=product_id, quantity=quantity):
            run_with_retry(self.session, _deduct, attempts=self.retry_attempts)

    def deduct_stock_batch(self, items) -> None:
        """
        Deduct several products in one transaction: all succeed or none do.

        Rows are updated in product_id order so concurrent batches take
        locks in the same order.
        """
        lines = _normalize_items(items)

        def _deduct_all():
            for product_id, quantity in lines:
                if self._conditional_deduct(product_id, quantity) == 0:
                    self.session.rollback()
                    raise InsufficientStockError(product_id, quantity)
            self.session.commit()

        with storage_errors(self.session, "deduct_stock_batch", count=len(lines)):
            run_with_retry(self.session, _deduct_all, attempts=self.retry_attempts)

    def _restore_row(self, product_id: int, quantity: int) -> int:
        return self._live(product_id).update(
            {
                Product.stock: Product.stock + quantity,
                Product.sold_count: case(
                    (Product.sold_count >= quantity, Product.sold_count - quantity),
                    else_=0,
                ),
            },
            synchronize_session=False,
        )

    def restore_stock(self, product_id: int, quantity: int) -> None:
        """Put quantity back; sold_count is reduced but clamped at zero."""
        quantity = validate_quantity(quantity)

        def _restore():
            if self._restore_row(product_id, quantity) == 0:
                self.session.rollback()
                raise NotFoundError(f"Product not found (product_id={product_id})")
            self.session.commit()

        with storage_errors(self.session, "restore_stock", product_id=product_id, quantity=quantity):
            run_with_retry(self.session, _restore, attempts=self.retry_attempts)

    def restore_stock_batch(self, items) -> None:
        """
        Restore several products in one transaction, e.g. a cancelled order.
        A missing or deleted product aborts the whole batch.
        """
        lines = _normalize_items(items)

        def _restore_all():
            for product_id, quantity in lines:
                if self._restore_row(product_id, quantity) == 0:
                    self.session.rollback()
                    raise NotFoundError(f"Product not found (product_id={product_id})")
            self.session.commit()

        with storage_errors(self.session, "restore_stock_batch", count=len(lines)):
            run_with_retry(self.session, _restore_all, attempts=self.retry_attempts)

    def update_stock(self, product_id: int, value: int) -> None:
        """Overwrite stock with an absolute value (inventory count correction)."""
        if value is None:
            raise InvalidArgumentError("stock is required")
        value = coerce_int("stock", value)
        if value < 0:
            raise InvalidArgumentError("stock must be >= 0")

        def _overwrite():
            updated = self._live(product_id).update({Product.stock: value}, synchronize_session=False)
            if updated == 0:
                self.session.rollback()
                raise NotFoundError(f"Product not found (product_id={product_id})")
            self.session.commit()

        with storage_errors(self.session, "update_stock", product_id=product_id):
            run_with_retry(self.session, _overwrite, attempts=self.retry_attempts)
        logger.info("Stock for product id=%s set to %s", product_id, value)

    # ------------------------------------------------------------------
    # Reads (advisory; never used to decide a deduction)
    # ------------------------------------------------------------------

    def get_stock(self, product_id: int) -> dict:
        # Column query: always the committed row, never an identity-map copy
        with storage_errors(self.session, "get_stock", product_id=product_id):
            row = (
                self.session.query(
                    Product.id, Product.stock, Product.sold_count, Product.min_stock, Product.max_stock
                )
                .filter(Product.id == product_id, Product.deleted_at.is_(None))
                .first()
            )
        if row is None:
            raise NotFoundError(f"Product not found (product_id={product_id})")
        return {
            "product_id": row.id,
            "stock": row.stock,
            "sold_count": row.sold_count,
            "min_stock": row.min_stock,
            "max_stock": row.max_stock,
            "is_low_stock": row.min_stock > 0 and row.stock <= row.min_stock,
        }

    def check_stock(self, items) -> dict:
        """Snapshot of whether each requested quantity is currently available."""
        lines = _normalize_items(items)
        ids = [product_id for product_id, _ in lines]
        with storage_errors(self.session, "check_stock", count=len(lines)):
            rows = dict(
                self.session.query(Product.id, Product.stock)
                .filter(Product.id.in_(ids), Product.deleted_at.is_(None))
                .all()
            )
        results = []
        for product_id, quantity in lines:
            available = rows.get(product_id)
            results.append({
                "product_id": product_id,
                "requested": quantity,
                "available": available or 0,
                "exists": available is not None,
                "sufficient": available is not None and available >= quantity,
            })
        return {
            "all_sufficient": all(r["sufficient"] for r in results),
            "items": results,
        }

    def _stock_report(self, condition, limit: int, merchant_id: int | None, operation: str) -> list[dict]:
        limit = min(max(limit or 50, 1), 500)
        query = self.session.query(Product).filter(Product.deleted_at.is_(None), condition)
        if merchant_id is not None:
            query = query.filter(Product.merchant_id == merchant_id)
        with storage_errors(self.session, operation):
            products = query.order_by(Product.stock.asc(), Product.id.asc()).limit(limit).all()
            return [p.to_dict(include_relations=False) for p in products]

    def get_low_stock_products(self, limit: int = 50, merchant_id: int | None = None) -> list[dict]:
        """Products at or below their configured min_stock."""
        return self._stock_report(
            (Product.min_stock > 0) & (Product.stock <= Product.min_stock),
            limit, merchant_id, "get_low_stock_products",
        )

    def get_out_of_stock_products(self, limit: int = 50, merchant_id: int | None = None) -> list[dict]:
        return self._stock_report(Product.stock == 0, limit, merchant_id, "get_out_of_stock_products")

    def get_inventory_statistics(self, merchant_id: int | None = None) -> dict:
        """Stock totals and stock value at cost price."""
        query = self.session.query(
            func.count(Product.id),
            func.coalesce(func.sum(Product.stock), 0),
            func.coalesce(func.sum(Product.sold_count), 0),
            func.coalesce(func.sum(case(
                ((Product.min_stock > 0) & (Product.stock <= Product.min_stock), 1), else_=0)), 0),
            func.coalesce(func.sum(case((Product.stock == 0, 1), else_=0)), 0),
            func.sum(Product.stock * Product.cost_price),
        ).filter(Product.deleted_at.is_(None))
        if merchant_id is not None:
            query = query.filter(Product.merchant_id == merchant_id)

        with storage_errors(self.session, "get_inventory_statistics", merchant_id=merchant_id):
            count, total_stock, total_sold, low, out, value = query.one()

        return {
            "total_products": int(count),
            "total_stock": int(total_stock),
            "total_sold": int(total_sold),
            "low_stock_count": int(low),
            "out_of_stock_count": int(out),
            "stock_value": _money(value),
        }
