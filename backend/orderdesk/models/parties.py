from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class Employee(db.Model):
    """
    Staff member acting on orders, payments and inventory.

    Only the identity is kept here; credentials and roles belong to the
    authentication service in front of this API.
    """
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Employee id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Packer(db.Model):
    """
    External packing workshop.

    packer_code is minted by the sequence allocator (EMPA1001, EMPA1002, ...).
    """
    __tablename__ = "packers"
    __table_args__ = (
        db.UniqueConstraint("packer_code", name="uq_packers_code"),
        db.UniqueConstraint("identification", name="uq_packers_identification"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    packer_code = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    identification = db.Column(db.String(20), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "packer_code": self.packer_code,
            "name": self.name,
            "identification": self.identification,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
