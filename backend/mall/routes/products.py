# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY:
- Catalog reads (list, detail, hot/new/recommend, by category/brand) are public
- Create requires product/create; update, status and delete require
  product/write or product/delete on the caller's own products
- product/manage (admin) may act on any product
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_any_permission
from ..errors import MallError, PermissionDeniedError, error_response
from ..extensions import db
from ..models import Product
from ..permissions import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_MANAGE,
    ACTION_READ,
    ACTION_WRITE,
    RESOURCE_PRODUCT,
    RESOURCE_REPORT,
)
from ..services.authorization_service import get_authorization_engine
from ..services.products_service import ProductService
from ..validation import (
    PRODUCT_POLICY,
    ValidationError,
    coerce_decimal,
    require_json_object,
    validate_attributes,
    validate_id_list,
    validate_images,
    validate_payload,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _service() -> ProductService:
    return ProductService(db.session)


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{name} must be true or false")


def _decimal_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return coerce_decimal(name, raw, None)


def _can_manage_products() -> bool:
    return get_authorization_engine().check_permission(g.subject, RESOURCE_PRODUCT, ACTION_MANAGE)


def _require_owner(product_id: int) -> None:
    """Raise PermissionDeniedError unless the caller may modify product_id."""
    if _can_manage_products():
        return
    product = _service().get_product(product_id, count_view=False)
    if product["merchant_id"] != g.current_user.id:
        raise PermissionDeniedError("Not the owner of this product")


@products_bp.get("")
def list_products_route():
    """
    List products.

    Query params:
    - category_id, brand_id, merchant_id: int
    - status: draft | active | inactive
    - is_hot, is_new, is_recommend: true | false
    - keyword: substring of name or description
    - min_price, max_price: decimal
    - sort_by: price_asc | price_desc | sales_desc | created_desc
    - page (default 1), page_size (default 20, max 100)
    """
    try:
        page = request.args.get("page", default=1, type=int)
        page_size = request.args.get("page_size", default=20, type=int)
        items, total = _service().list_products(
            category_id=request.args.get("category_id", type=int),
            brand_id=request.args.get("brand_id", type=int),
            merchant_id=request.args.get("merchant_id", type=int),
            status=request.args.get("status") or None,
            is_hot=_bool_arg("is_hot"),
            is_new=_bool_arg("is_new"),
            is_recommend=_bool_arg("is_recommend"),
            keyword=(request.args.get("keyword") or "").strip() or None,
            min_price=_decimal_arg("min_price"),
            max_price=_decimal_arg("max_price"),
            sort_by=request.args.get("sort_by") or None,
            page=page,
            page_size=page_size,
        )
    except MallError as e:
        return error_response(e)

    return {
        "items": items,
        "count": len(items),
        "pagination": {
            "page": max(page or 1, 1),
            "page_size": min(max(page_size or 20, 1), 100),
            "total": total,
        },
    }


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return _service().get_product(product_id)
    except MallError as e:
        return error_response(e)


@products_bp.get("/hot")
def hot_products_route():
    try:
        return {"items": _service().get_hot_products(request.args.get("limit", default=10, type=int))}
    except MallError as e:
        return error_response(e)


@products_bp.get("/new")
def new_products_route():
    try:
        return {"items": _service().get_new_products(request.args.get("limit", default=10, type=int))}
    except MallError as e:
        return error_response(e)


@products_bp.get("/recommend")
def recommend_products_route():
    try:
        return {"items": _service().get_recommend_products(request.args.get("limit", default=10, type=int))}
    except MallError as e:
        return error_response(e)


@products_bp.get("/category/<int:category_id>")
def products_by_category_route(category_id: int):
    try:
        items, total = _service().get_products_by_category(
            category_id,
            page=request.args.get("page", default=1, type=int),
            page_size=request.args.get("page_size", default=20, type=int),
        )
    except MallError as e:
        return error_response(e)
    return {"items": items, "total": total}


@products_bp.get("/brand/<int:brand_id>")
def products_by_brand_route(brand_id: int):
    try:
        items, total = _service().get_products_by_brand(
            brand_id,
            page=request.args.get("page", default=1, type=int),
            page_size=request.args.get("page_size", default=20, type=int),
        )
    except MallError as e:
        return error_response(e)
    return {"items": items, "total": total}


@products_bp.get("/statistics")
@require_auth
@require_any_permission((RESOURCE_REPORT, ACTION_READ), (RESOURCE_REPORT, ACTION_MANAGE))
def product_statistics_route():
    """Merchants see their own products; product/manage may pass merchant_id or see all."""
    try:
        if _can_manage_products():
            merchant_id = request.args.get("merchant_id", type=int)
        else:
            merchant_id = g.current_user.id
        return _service().get_product_statistics(merchant_id)
    except MallError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_CREATE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def create_product_route():
    """
    Create a draft product owned by the caller.

    Body: product fields plus optional "images" (list of URLs, first is
    main) and "attributes" (list of {attr_name, attr_value, sort?}).
    Admins may pass "merchant_id" to create on behalf of a merchant.
    """
    payload = require_json_object(request.get_json(silent=True))

    try:
        images = validate_images(payload.pop("images", None))
        attributes = validate_attributes(payload.pop("attributes", None))
        merchant_id = payload.pop("merchant_id", None)
        if merchant_id is None or not _can_manage_products():
            merchant_id = g.current_user.id
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        created = _service().create_product(
            merchant_id=merchant_id, patch=patch, images=images, attributes=attributes
        )
    except MallError as e:
        return error_response(e)

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_WRITE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def update_product_route(product_id: int):
    """
    Partial update. "images"/"attributes", when present, replace the
    current set in full ([] clears it); when absent they are kept.
    """
    payload = require_json_object(request.get_json(silent=True))

    try:
        _require_owner(product_id)
        images = validate_images(payload.pop("images", None))
        attributes = validate_attributes(payload.pop("attributes", None))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = _service().update_product(
            product_id, patch=patch, images=images, attributes=attributes
        )
    except MallError as e:
        return error_response(e)

    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_DELETE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def delete_product_route(product_id: int):
    """Soft delete."""
    try:
        _require_owner(product_id)
        _service().delete_product(product_id)
    except MallError as e:
        return error_response(e)

    return {"ok": True}, 200


@products_bp.patch("/<int:product_id>/status")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_WRITE), (RESOURCE_PRODUCT, ACTION_MANAGE))
def update_status_route(product_id: int):
    payload = require_json_object(request.get_json(silent=True))
    try:
        _require_owner(product_id)
        return _service().update_status(product_id, payload.get("status"))
    except MallError as e:
        return error_response(e)


@products_bp.post("/batch-status")
@require_auth
@require_any_permission((RESOURCE_PRODUCT, ACTION_MANAGE))
def batch_status_route():
    """Body: {"ids": [int, ...], "status": str}. Admin only."""
    payload = require_json_object(request.get_json(silent=True))
    try:
        ids = validate_id_list(payload.get("ids"))
        updated = _service().batch_update_status(ids, payload.get("status"))
    except MallError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to batch update product status")
        return {"error": "Internal server error"}, 500

    return {"updated": updated}
