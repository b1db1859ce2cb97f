from __future__ import annotations

from ..extensions import db
from mall.time_utils import to_utc_z

PRODUCT_STATUS_DRAFT = "draft"
PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_INACTIVE = "inactive"
PRODUCT_STATUSES = (PRODUCT_STATUS_DRAFT, PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE)

# Money: exact decimals, never floats
Money = db.Numeric(12, 2, asdecimal=True)
Measure = db.Numeric(10, 3, asdecimal=True)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_parent_sort", "parent_id", "sort"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    level = db.Column(db.Integer, nullable=False, default=1)
    sort = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "level": self.level,
            "sort": self.sort,
            "status": self.status,
        }


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    logo = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)
    sort = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "logo": self.logo,
            "description": self.description,
            "sort": self.sort,
            "status": self.status,
        }


class Product(db.Model):
    """
    Product aggregate root.

    The aggregate is the product row plus its images and attributes; the
    three are always written in one transaction.

    STOCK INVARIANTS:
    - stock >= 0 (enforced by the conditional UPDATE in StockController
      and by the CHECK constraint below)
    - sold_count >= 0 (restores clamp at zero)

    SOFT DELETE:
    deleted_at is set instead of removing the row. Every read path in
    ProductService says whether it includes deleted rows.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("sold_count >= 0", name="ck_products_sold_count_non_negative"),
        db.Index("ix_products_category_status", "category_id", "status"),
        db.Index("ix_products_merchant_status", "merchant_id", "status"),
        db.Index("ix_products_sort_id", "sort", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    sub_title = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    detail = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    price = db.Column(Money, nullable=False)
    origin_price = db.Column(Money, nullable=True)
    cost_price = db.Column(Money, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=False, default=0)
    sold_count = db.Column(db.Integer, nullable=False, default=0)
    view_count = db.Column(db.Integer, nullable=False, default=0)

    weight = db.Column(Measure, nullable=True)
    volume = db.Column(Measure, nullable=True)
    unit = db.Column(db.String(20), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_DRAFT, index=True)
    is_hot = db.Column(db.Boolean, nullable=False, default=False)
    is_new = db.Column(db.Boolean, nullable=False, default=False)
    is_recommend = db.Column(db.Boolean, nullable=False, default=False)

    seo_title = db.Column(db.String(255), nullable=True)
    seo_keywords = db.Column(db.String(255), nullable=True)
    seo_description = db.Column(db.String(500), nullable=True)
    sort = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    category = db.relationship("Category", lazy="joined")
    brand = db.relationship("Brand", lazy="joined")
    merchant = db.relationship("User", backref=db.backref("products", lazy=True))
    images = db.relationship(
        "ProductImage",
        order_by="ProductImage.sort",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="product",
    )
    attributes = db.relationship(
        "ProductAttribute",
        order_by="ProductAttribute.sort",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="product",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} status={self.status}>"

    @property
    def main_image(self) -> "ProductImage | None":
        for image in self.images:
            if image.is_main:
                return image
        return None

    def to_dict(self, *, include_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "sub_title": self.sub_title,
            "description": self.description,
            "detail": self.detail,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "merchant_id": self.merchant_id,
            "price": self.price,
            "origin_price": self.origin_price,
            "cost_price": self.cost_price,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "sold_count": self.sold_count,
            "view_count": self.view_count,
            "weight": self.weight,
            "volume": self.volume,
            "unit": self.unit,
            "status": self.status,
            "is_hot": self.is_hot,
            "is_new": self.is_new,
            "is_recommend": self.is_recommend,
            "seo_title": self.seo_title,
            "seo_keywords": self.seo_keywords,
            "seo_description": self.seo_description,
            "sort": self.sort,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
        if include_relations:
            data["category"] = self.category.to_dict() if self.category else None
            data["brand"] = self.brand.to_dict() if self.brand else None
            data["images"] = [image.to_dict() for image in self.images]
            data["attributes"] = [attr.to_dict() for attr in self.attributes]
        else:
            main = self.main_image
            data["main_image"] = main.url if main else None
        return data


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = (
        db.Index("ix_product_images_product_sort", "product_id", "sort"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    sort = db.Column(db.Integer, nullable=False, default=0)
    is_main = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="images")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "sort": self.sort,
            "is_main": self.is_main,
        }


class ProductAttribute(db.Model):
    __tablename__ = "product_attributes"
    __table_args__ = (
        db.Index("ix_product_attributes_product_sort", "product_id", "sort"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    attr_name = db.Column(db.String(100), nullable=False)
    attr_value = db.Column(db.String(255), nullable=False)
    sort = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="attributes")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "attr_name": self.attr_name,
            "attr_value": self.attr_value,
            "sort": self.sort,
        }
