# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Stock routes.

Deductions and restores are the checkout contract: order/create may
deduct, order/write may restore. Setting an absolute stock level is a
product edit (product/write on the caller's own product, or
product/manage). Stock reports need report/read.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_any_permission
from ..errors import MallError, PermissionDeniedError, error_response
from ..extensions import db
from ..permissions import (
    ACTION_CREATE,
    ACTION_MANAGE,
    ACTION_READ,
    ACTION_WRITE,
    RESOURCE_ORDER,
    RESOURCE_PRODUCT,
    RESOURCE_REPORT,
)
from ..services.authorization_service import get_authorization_engine
from ..services.products_service import ProductService
from ..services.stock_service import StockController
from ..validation import require_json_object

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _controller() -> StockController:
    return StockController(db.session, current_app.config.get("STOCK_RETRY_ATTEMPTS", 3))


def _can_manage_products() -> bool:
    return get_authorization_engine().check_permission(g.subject, RESOURCE_PRODUCT, ACTION_MANAGE)


def _scoped_merchant_id():
    """Admins may pick any merchant_id (or none); everyone else sees their own."""
    if _can_manage_products():
        return request.args.get("merchant_id", type=int)
    return g.current_user.id


@inventory_bp.get("/<int:product_id>")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_READ), (RESOURCE_PRODUCT, ACTION_MANAGE))
def get_stock_route(product_id: int):
    try:
        return _controller().get_stock(product_id)
    except MallError as e:
        return error_response(e)


@inventory_bp.post("/deduct")
@require_auth
@require_any_permission((RESOURCE_ORDER, ACTION_CREATE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def deduct_stock_route():
    """Body: {"product_id": int, "quantity": int > 0}. 409 if stock is insufficient."""
    payload = require_json_object(request.get_json(silent=True))
    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return {"error": "product_id must be an integer"}, 400

    try:
        controller = _controller()
        controller.deduct_stock(product_id, payload.get("quantity"))
        return controller.get_stock(product_id)
    except MallError as e:
        return error_response(e)


@inventory_bp.post("/deduct-batch")
@require_auth
@require_any_permission((RESOURCE_ORDER, ACTION_CREATE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def deduct_batch_route():
    """Body: {"items": [{"product_id", "quantity"}, ...]}. All or nothing."""
    payload = require_json_object(request.get_json(silent=True))
    try:
        _controller().deduct_stock_batch(payload.get("items"))
    except MallError as e:
        return error_response(e)
    return {"ok": True}


@inventory_bp.post("/restore")
@require_auth
@require_any_permission((RESOURCE_ORDER, ACTION_WRITE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def restore_stock_route():
    """Body: {"product_id": int, "quantity": int > 0}."""
    payload = require_json_object(request.get_json(silent=True))
    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return {"error": "product_id must be an integer"}, 400

    try:
        controller = _controller()
        controller.restore_stock(product_id, payload.get("quantity"))
        return controller.get_stock(product_id)
    except MallError as e:
        return error_response(e)


@inventory_bp.post("/restore-batch")
@require_auth
@require_any_permission((RESOURCE_ORDER, ACTION_WRITE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def restore_batch_route():
    """Body: {"items": [{"product_id", "quantity"}, ...]}. All or nothing."""
    payload = require_json_object(request.get_json(silent=True))
    try:
        _controller().restore_stock_batch(payload.get("items"))
    except MallError as e:
        return error_response(e)
    return {"ok": True}


@inventory_bp.put("/<int:product_id>")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_WRITE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def set_stock_route(product_id: int):
    """Body: {"stock": int >= 0}. Absolute overwrite."""
    payload = require_json_object(request.get_json(silent=True))
    try:
        if not _can_manage_products():
            product = ProductService(db.session).get_product(product_id, count_view=False)
            if product["merchant_id"] != g.current_user.id:
                raise PermissionDeniedError("Not the owner of this product")
        controller = _controller()
        controller.update_stock(product_id, payload.get("stock"))
        return controller.get_stock(product_id)
    except MallError as e:
        return error_response(e)


@inventory_bp.post("/check")
@require_auth
def check_stock_route():
    """Body: {"items": [...]}. Advisory snapshot; deduct decides for real."""
    payload = require_json_object(request.get_json(silent=True))
    try:
        return _controller().check_stock(payload.get("items"))
    except MallError as e:
        return error_response(e)


@inventory_bp.get("/low-stock")
@require_auth
@require_any_permission((RESOURCE_REPORT, ACTION_READ), (RESOURCE_REPORT, ACTION_MANAGE))
def low_stock_route():
    try:
        items = _controller().get_low_stock_products(
            request.args.get("limit", default=50, type=int), _scoped_merchant_id()
        )
    except MallError as e:
        return error_response(e)
    return {"items": items, "count": len(items)}


@inventory_bp.get("/out-of-stock")
@require_auth
@require_any_permission((RESOURCE_REPORT, ACTION_READ), (RESOURCE_REPORT, ACTION_MANAGE))
def out_of_stock_route():
    try:
        items = _controller().get_out_of_stock_products(
            request.args.get("limit", default=50, type=int), _scoped_merchant_id()
        )
    except MallError as e:
        return error_response(e)
    return {"items": items, "count": len(items)}


@inventory_bp.get("/statistics")
@require_auth
@require_any_permission((RESOURCE_REPORT, ACTION_READ), (RESOURCE_REPORT, ACTION_MANAGE))
def inventory_statistics_route():
    try:
        return _controller().get_inventory_statistics(_scoped_merchant_id())
    except MallError as e:
        return error_response(e)
