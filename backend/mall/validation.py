from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidArgumentError
from .models import PRODUCT_STATUSES

# Numeric(12, 2): ten integer digits
MAX_PRICE = Decimal("9999999999.99")

# Upper bound for a single deduct/restore request
MAX_STOCK_QUANTITY = 1_000_000_000


class ValidationError(InvalidArgumentError):
    """400-level input problem."""


def require_json_object(raw: Any) -> dict:
    """Request body as a fresh dict. No body is an empty object; a list or scalar is rejected."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("Request body must be a JSON object")
    return dict(raw)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_WRITABLE_FIELDS = {
    "name", "sub_title", "description", "detail",
    "category_id", "brand_id",
    "price", "origin_price", "cost_price",
    "stock", "min_stock", "max_stock",
    "weight", "volume", "unit",
    "is_hot", "is_new", "is_recommend",
    "seo_title", "seo_keywords", "seo_description", "sort",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_WRITABLE_FIELDS,
    required_on_create={"name", "category_id", "price"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any, scale: int | None) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a decimal number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a decimal number")
    elif isinstance(value, float):
        # repr of the float, not its binary expansion
        result = Decimal(repr(value))
    else:
        raise ValidationError(f"{key} must be a decimal number")

    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if scale is not None and result.as_tuple().exponent < -scale:
        raise ValidationError(f"{key} allows at most {scale} decimal places")
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value, coltype.scale)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length, Numeric scale)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price", "origin_price", "cost_price"):
        value = patch.get(key)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_PRICE:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE}")

    for key in ("stock", "min_stock", "max_stock", "sort"):
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")

    for key in ("weight", "volume"):
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")

    enforce_stock_bounds(patch.get("min_stock"), patch.get("max_stock"))


def enforce_stock_bounds(min_stock: Any, max_stock: Any) -> None:
    """A max_stock of 0 or None means no upper bound."""
    if min_stock is not None and max_stock and min_stock > max_stock:
        raise ValidationError("min_stock cannot exceed max_stock")


def validate_status(status: Any) -> str:
    if status not in PRODUCT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")
    return status


def validate_images(raw: Any) -> list[str] | None:
    """
    None -> None (keep current images). Otherwise a list of non-blank URL
    strings; the first one becomes the main image.
    """
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValidationError("images must be a list of URLs")
    urls = []
    for i, url in enumerate(raw):
        if not isinstance(url, str) or not url.strip():
            raise ValidationError(f"images[{i}] must be a non-empty string")
        if len(url.strip()) > 500:
            raise ValidationError(f"images[{i}] exceeds max length 500")
        urls.append(url.strip())
    return urls


def validate_attributes(raw: Any) -> list[dict] | None:
    """
    None -> None (keep current attributes). Otherwise a list of
    {"attr_name": str, "attr_value": str, "sort"?: int}.
    """
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValidationError("attributes must be a list")
    attributes = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"attributes[{i}] must be an object")
        name = item.get("attr_name")
        value = item.get("attr_value")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"attributes[{i}].attr_name is required")
        if value is None or not str(value).strip():
            raise ValidationError(f"attributes[{i}].attr_value is required")
        if len(name.strip()) > 100:
            raise ValidationError(f"attributes[{i}].attr_name exceeds max length 100")
        if len(str(value).strip()) > 255:
            raise ValidationError(f"attributes[{i}].attr_value exceeds max length 255")
        sort = item.get("sort", i)
        attributes.append({
            "attr_name": name.strip(),
            "attr_value": str(value).strip(),
            "sort": coerce_int(f"attributes[{i}].sort", sort),
        })
    return attributes


def validate_quantity(value: Any, key: str = "quantity") -> int:
    """Strictly positive integer quantity."""
    if value is None:
        raise ValidationError(f"{key} is required")
    quantity = coerce_int(key, value)
    if quantity <= 0:
        raise ValidationError(f"{key} must be > 0")
    if quantity > MAX_STOCK_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_STOCK_QUANTITY}")
    return quantity


def validate_id_list(raw: Any, key: str = "ids") -> list[int]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{key} must be a non-empty list")
    ids = []
    for i, value in enumerate(raw):
        ident = coerce_int(f"{key}[{i}]", value)
        if ident <= 0:
            raise ValidationError(f"{key}[{i}] must be a positive id")
        ids.append(ident)
    return ids
