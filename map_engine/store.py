"""Data-access layer.

One store per record kind. Every method issues a single filtered query or
write against the database session and either returns rows or raises:
``ValidationError`` for bad input caught before the query, ``NotFound`` when
a keyed lookup misses, ``ProviderError`` when the database call itself fails
(message passed through verbatim). Nothing is retried.

Create methods take ``commit=False`` to only flush, so several writes can
share one transaction inside ``Store.atomic``.

Views, the upload pipeline and the CLI only talk to the database through
``Store``; swapping the backing provider means replacing this module.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func

from .coerce import parse_amount, parse_date
from .db import provider_call
from .errors import InvalidTransition, NotFound, ValidationError
from .models import (
    UPLOAD_STATUSES,
    ExtractedTransaction,
    SpendingAmount,
    SpendingLocation,
    Upload,
    User,
    utcnow,
    db,
)

logger = logging.getLogger(__name__)


def _require(fields: Dict, names: Sequence[str]) -> None:
    missing = [n for n in names if fields.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def _pick(fields: Dict, allowed: Iterable[str]) -> Dict:
    return {k: v for k, v in fields.items() if k in allowed}


class _BaseStore:
    def __init__(self, session):
        self.session = session

    def _get(self, model, record_id: str, label: str):
        with provider_call(self.session, f"get {label}"):
            row = self.session.get(model, record_id)
        if row is None:
            raise NotFound(f"{label} {record_id} not found")
        return row

    def _commit(self, action: str) -> None:
        with provider_call(self.session, action):
            self.session.commit()

    def _save(self, rows: Sequence, action: str, commit: bool) -> None:
        # commit=False only flushes; the caller commits the whole batch.
        with provider_call(self.session, action):
            self.session.add_all(rows)
            if commit:
                self.session.commit()
            else:
                self.session.flush()


class UserStore(_BaseStore):
    FIELDS = ("email", "first_name", "last_name", "bank", "current_balance", "address", "password_hash")
    REQUIRED = ("email", "first_name", "last_name", "password_hash")

    def get_by_id(self, user_id: str) -> User:
        return self._get(User, user_id, "user")

    def get_by_email(self, email: str) -> Optional[User]:
        with provider_call(self.session, "get user by email"):
            return self.session.execute(
                db.select(User).where(func.lower(User.email) == email.strip().lower())
            ).scalar_one_or_none()

    def _build(self, fields: Dict) -> User:
        _require(fields, self.REQUIRED)
        data = _pick(fields, self.FIELDS)
        data["email"] = data["email"].strip()
        if "current_balance" in data:
            try:
                data["current_balance"] = parse_amount(data["current_balance"])
            except ValueError as exc:
                raise ValidationError("Current balance must be a number.") from exc
        return User(**data)

    def create(self, fields: Dict) -> User:
        user = self._build(fields)
        with provider_call(self.session, "create user"):
            self.session.add(user)
            self.session.commit()
        return user

    def create_with_locations(self, fields: Dict, locations: Sequence[Dict]) -> User:
        """Create a user and its seed locations in a single transaction.

        Either every row is written or none is.
        """
        user = self._build(fields)
        seeds = []
        for loc in locations:
            _require(loc, ("name",))
            seeds.append(
                SpendingLocation(
                    name=loc["name"].strip(),
                    category=(loc.get("category") or "Other").strip() or "Other",
                )
            )
        with provider_call(self.session, "create user with locations"):
            self.session.add(user)
            self.session.flush()
            for seed in seeds:
                seed.user_id = user.id
                self.session.add(seed)
            self.session.commit()
        return user

    def update(self, user_id: str, fields: Dict) -> User:
        user = self.get_by_id(user_id)
        for key, value in _pick(fields, self.FIELDS).items():
            setattr(user, key, value)
        self._commit("update user")
        return user


class LocationStore(_BaseStore):
    def get_by_user_id(self, user_id: str) -> List[SpendingLocation]:
        with provider_call(self.session, "list locations"):
            return list(
                self.session.execute(
                    db.select(SpendingLocation)
                    .where(SpendingLocation.user_id == user_id)
                    .order_by(SpendingLocation.created_at, SpendingLocation.name)
                ).scalars()
            )

    def get_by_id(self, location_id: str) -> SpendingLocation:
        return self._get(SpendingLocation, location_id, "spending location")

    def find_by_name(self, user_id: str, name: str) -> Optional[SpendingLocation]:
        with provider_call(self.session, "find location"):
            return self.session.execute(
                db.select(SpendingLocation)
                .where(SpendingLocation.user_id == user_id)
                .where(func.lower(SpendingLocation.name) == name.strip().lower())
                .limit(1)
            ).scalar_one_or_none()

    def create(self, user_id: str, name: str, category: str, commit: bool = True) -> SpendingLocation:
        fields = {"user_id": user_id, "name": (name or "").strip(), "category": (category or "").strip()}
        _require(fields, ("user_id", "name", "category"))
        location = SpendingLocation(**fields)
        self._save([location], "create location", commit)
        return location

    def update(self, location_id: str, fields: Dict, commit: bool = True) -> SpendingLocation:
        updates = {k: (v or "").strip() for k, v in _pick(fields, ("name", "category")).items()}
        for key, value in updates.items():
            if not value:
                raise ValidationError(f"Location {key} cannot be empty.")
        location = self.get_by_id(location_id)
        for key, value in updates.items():
            setattr(location, key, value)
        self._save([location], "update location", commit)
        return location


class AmountStore(_BaseStore):
    def get_by_location_id(self, location_id: str) -> List[SpendingAmount]:
        with provider_call(self.session, "list amounts"):
            return list(
                self.session.execute(
                    db.select(SpendingAmount)
                    .where(SpendingAmount.spending_location_id == location_id)
                    .order_by(SpendingAmount.transaction_date.desc(), SpendingAmount.created_at.desc())
                ).scalars()
            )

    def get_total_by_location_id(self, location_id: str) -> float:
        with provider_call(self.session, "total for location"):
            amounts = self.session.execute(
                db.select(SpendingAmount.amount).where(SpendingAmount.spending_location_id == location_id)
            ).scalars()
            return round(sum(amounts, 0.0), 2)

    def get_all_totals_by_location_ids(self, location_ids: Sequence[str]) -> Dict[str, float]:
        """Fetch every amount for ``location_ids`` in one query and fold by id.

        Ids with no amounts map to 0.
        """
        totals: Dict[str, float] = {location_id: 0.0 for location_id in location_ids}
        if not totals:
            return totals
        with provider_call(self.session, "totals for locations"):
            rows = self.session.execute(
                db.select(SpendingAmount.spending_location_id, SpendingAmount.amount).where(
                    SpendingAmount.spending_location_id.in_(list(totals))
                )
            ).all()
        for location_id, amount in rows:
            totals[location_id] = totals.get(location_id, 0.0) + amount
        return {k: round(v, 2) for k, v in totals.items()}

    def create(
        self,
        location_id: str,
        amount,
        transaction_date: Optional[dt.date | str] = None,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> SpendingAmount:
        if not location_id:
            raise ValidationError("Missing required field(s): spending_location_id")
        try:
            value = parse_amount(amount)
        except ValueError as exc:
            raise ValidationError("Amount must be a valid number.") from exc
        try:
            when = parse_date(transaction_date) if transaction_date else dt.date.today()
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        row = SpendingAmount(
            spending_location_id=location_id,
            amount=value,
            transaction_date=when,
            description=(description or None),
        )
        self._save([row], "create amount", commit)
        return row

    def delete(self, amount_id: str) -> None:
        row = self._get(SpendingAmount, amount_id, "spending amount")
        with provider_call(self.session, "delete amount"):
            self.session.delete(row)
            self.session.commit()


class UploadStore(_BaseStore):
    def create(self, user_id: str, file_name: str, file_size: int) -> Upload:
        _require({"user_id": user_id, "file_name": file_name}, ("user_id", "file_name"))
        upload = Upload(user_id=user_id, file_name=file_name, file_size=int(file_size), status="processing")
        with provider_call(self.session, "create upload"):
            self.session.add(upload)
            self.session.commit()
        return upload

    def get_by_id(self, upload_id: str) -> Upload:
        return self._get(Upload, upload_id, "upload")

    def get_by_user_id(self, user_id: str) -> List[Upload]:
        with provider_call(self.session, "list uploads"):
            return list(
                self.session.execute(
                    db.select(Upload).where(Upload.user_id == user_id).order_by(Upload.created_at.desc())
                ).scalars()
            )

    def update_status(self, upload_id: str, status: str, error_message: Optional[str] = None) -> Upload:
        if status not in UPLOAD_STATUSES:
            raise ValidationError(f"Unknown upload status: {status}")
        upload = self.get_by_id(upload_id)
        if upload.is_terminal and upload.status != status:
            raise InvalidTransition(f"Upload {upload_id} is already {upload.status}")
        upload.status = status
        if error_message is not None:
            upload.error_message = error_message
        upload.updated_at = utcnow()
        self._commit("update upload status")
        logger.info("upload %s -> %s", upload_id, status)
        return upload

    def set_storage_path(self, upload_id: str, path: Optional[str]) -> Upload:
        upload = self.get_by_id(upload_id)
        upload.storage_path = path
        upload.updated_at = utcnow()
        self._commit("set storage path")
        return upload

    def set_analysis(self, upload_id: str, results: Dict) -> Upload:
        upload = self.get_by_id(upload_id)
        upload.analysis_results = results
        upload.updated_at = utcnow()
        self._commit("set analysis results")
        return upload

    def delete(self, upload_id: str) -> None:
        upload = self.get_by_id(upload_id)
        with provider_call(self.session, "delete upload"):
            self.session.delete(upload)
            self.session.commit()


class TransactionStore(_BaseStore):
    FIELDS = (
        "upload_id",
        "user_id",
        "transaction_date",
        "merchant_name",
        "amount",
        "category",
        "location_address",
        "location_city",
        "location_state",
        "location_zip",
        "raw_text",
    )

    def create_many(self, rows: Sequence[Dict], commit: bool = True) -> List[ExtractedTransaction]:
        records = []
        for fields in rows:
            _require(fields, ("upload_id", "user_id", "transaction_date", "merchant_name", "amount"))
            records.append(ExtractedTransaction(**_pick(fields, self.FIELDS)))
        if not records:
            return []
        self._save(records, "create extracted transactions", commit)
        return records

    def get_by_upload_id(self, upload_id: str) -> List[ExtractedTransaction]:
        with provider_call(self.session, "list extracted transactions"):
            return list(
                self.session.execute(
                    db.select(ExtractedTransaction)
                    .where(ExtractedTransaction.upload_id == upload_id)
                    .order_by(ExtractedTransaction.transaction_date, ExtractedTransaction.merchant_name)
                ).scalars()
            )


class Store:
    """Entry point to every data-access contract."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session
        self.users = UserStore(self.session)
        self.locations = LocationStore(self.session)
        self.amounts = AmountStore(self.session)
        self.uploads = UploadStore(self.session)
        self.transactions = TransactionStore(self.session)

    @contextmanager
    def atomic(self, action: str):
        """Commit every write made in the block at once, or none of them.

        Writes inside the block must pass ``commit=False``. Any exception
        rolls the session back and propagates.
        """
        try:
            yield self
        except Exception:
            self.session.rollback()
            raise
        with provider_call(self.session, action):
            self.session.commit()
