"""SQLAlchemy models for the Map Engine web application."""

from __future__ import annotations

import datetime as dt
import uuid

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

UPLOAD_STATUSES = ("processing", "completed", "failed")
TERMINAL_STATUSES = ("completed", "failed")


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value is not None else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    bank = db.Column(db.String(120), nullable=False, default="")
    current_balance = db.Column(db.Float, nullable=False, default=0.0)
    address = db.Column(db.String(255), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    locations = db.relationship("SpendingLocation", back_populates="user", cascade="all, delete-orphan")
    uploads = db.relationship("Upload", back_populates="user", cascade="all, delete-orphan")

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "bank": self.bank,
            "current_balance": self.current_balance,
            "address": self.address,
            "created_at": _iso(self.created_at),
        }


class SpendingLocation(db.Model):
    __tablename__ = "spending_locations"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="Other")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="locations")
    amounts = db.relationship("SpendingAmount", back_populates="location", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "category": self.category,
            "created_at": _iso(self.created_at),
        }


class SpendingAmount(db.Model):
    __tablename__ = "spending_amounts"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    spending_location_id = db.Column(
        db.String(36),
        db.ForeignKey("spending_locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount = db.Column(db.Float, nullable=False)
    transaction_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    location = db.relationship("SpendingLocation", back_populates="amounts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spending_location_id": self.spending_location_id,
            "amount": self.amount,
            "transaction_date": _iso(self.transaction_date),
            "description": self.description,
            "created_at": _iso(self.created_at),
        }


class Upload(db.Model):
    __tablename__ = "uploads"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="processing")
    storage_path = db.Column(db.String(512))
    analysis_results = db.Column(db.JSON)
    error_message = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime)

    user = db.relationship("User", back_populates="uploads")
    transactions = db.relationship("ExtractedTransaction", back_populates="upload", cascade="all, delete-orphan")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "status": self.status,
            "storage_path": self.storage_path,
            "analysis_results": self.analysis_results,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ExtractedTransaction(db.Model):
    __tablename__ = "extracted_transactions"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    upload_id = db.Column(db.String(36), db.ForeignKey("uploads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    transaction_date = db.Column(db.Date, nullable=False)
    merchant_name = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(120))
    location_address = db.Column(db.String(255))
    location_city = db.Column(db.String(120))
    location_state = db.Column(db.String(64))
    location_zip = db.Column(db.String(16))
    raw_text = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    upload = db.relationship("Upload", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upload_id": self.upload_id,
            "user_id": self.user_id,
            "transaction_date": _iso(self.transaction_date),
            "merchant_name": self.merchant_name,
            "amount": self.amount,
            "category": self.category,
            "location_address": self.location_address,
            "location_city": self.location_city,
            "location_state": self.location_state,
            "location_zip": self.location_zip,
            "created_at": _iso(self.created_at),
        }
