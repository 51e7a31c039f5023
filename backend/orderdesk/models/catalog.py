from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class Category(db.Model):
    """
    Product/addition category.

    The first three alphanumeric characters of the name (uppercased, padded
    with X) form the code prefix of every product and addition in it.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Catalog product.

    CODE DESIGN:
    product_code is <3-letter category prefix><2-digit suffix> (TEL01..TEL99).
    It is minted by sequence_service.allocate_code and only ever replaced by
    a freshly allocated code (category change), never edited in place.
    Uniqueness is enforced by the database; concurrent creations under the
    same prefix are resolved by retrying the whole allocate-and-insert.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("product_code", name="uq_products_code"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_code = db.Column(db.String(10), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Addition(db.Model):
    """Garment add-on (embroidery, print, ...) coded like products."""
    __tablename__ = "additions"
    __table_args__ = (
        db.UniqueConstraint("addition_code", name="uq_additions_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    addition_code = db.Column(db.String(10), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("additions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "addition_code": self.addition_code,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
