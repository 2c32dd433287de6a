"""Upload and extraction pipeline.

Each attempt walks ``IDLE -> SELECTING -> UPLOADING -> EXTRACTING ->
COMPLETED``, dropping to ``FAILED`` at the first problem:

- SELECTING: MIME type and size checks. A rejected file creates no upload
  row and never reaches storage.
- UPLOADING: the upload row is created as ``processing`` and the bytes are
  stored under ``{user_id}/{upload_id}/{file_name}``. A storage failure marks
  the row ``failed``.
- EXTRACTING: local text extraction, plus AI analysis in ``ai`` mode. A parse
  or provider failure marks the row ``failed`` and leaves the stored file in
  place. AI results are written in one transaction, so a failed import keeps
  no extracted rows or spending.

Attempts run synchronously and cannot be cancelled once started.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .analysis import SpendingAnalysis, StatementAnalyzer, to_transaction_rows
from .categorizer import categorize_merchant
from .config import EXTRACTION_MODES, AppConfig
from .errors import ExtractionError, InvalidTransition, ProviderError, ValidationError
from .extraction import extract_pdf
from .models import Upload
from .storage import BlobStorage
from .store import Store

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = ("application/pdf", "application/x-pdf")
GENERIC_MIME_TYPES = ("", "application/octet-stream")
EXTRACTION_FAILED_MESSAGE = "Failed to process PDF file. Please try again."


class UploadState(enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (UploadState.COMPLETED, UploadState.FAILED)

_ALLOWED = {
    UploadState.IDLE: (UploadState.SELECTING,),
    UploadState.SELECTING: (UploadState.UPLOADING, UploadState.FAILED),
    UploadState.UPLOADING: (UploadState.EXTRACTING, UploadState.FAILED),
    UploadState.EXTRACTING: (UploadState.COMPLETED, UploadState.FAILED),
}


@dataclass
class UploadAttempt:
    file_name: str
    content_type: str
    size: int
    state: UploadState = UploadState.IDLE
    history: List[UploadState] = field(default_factory=lambda: [UploadState.IDLE])
    upload: Optional[Upload] = None
    message: Optional[str] = None
    text: Optional[str] = None
    analysis: Optional[SpendingAnalysis] = None
    transaction_count: int = 0
    imported_locations: int = 0

    def advance(self, state: UploadState) -> None:
        if state not in _ALLOWED.get(self.state, ()):
            raise InvalidTransition(f"Cannot move upload attempt from {self.state.value} to {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, message: str) -> "UploadAttempt":
        self.message = message
        self.advance(UploadState.FAILED)
        return self

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is UploadState.COMPLETED


def is_pdf(file_name: str, content_type: Optional[str]) -> bool:
    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type in PDF_MIME_TYPES:
        return True
    return content_type in GENERIC_MIME_TYPES and file_name.lower().endswith(".pdf")


class UploadPipeline:
    def __init__(
        self,
        store: Store,
        storage: BlobStorage,
        config: AppConfig,
        analyzer: Optional[StatementAnalyzer] = None,
    ):
        self.store = store
        self.storage = storage
        self.config = config
        self.analyzer = analyzer

    @property
    def mode(self) -> str:
        return self.config.extraction_mode

    def select(self, file_name: str, content_type: Optional[str], size: int) -> UploadAttempt:
        attempt = UploadAttempt(file_name=file_name or "", content_type=content_type or "", size=int(size or 0))
        attempt.advance(UploadState.SELECTING)
        limit_mb = self.config.max_upload_bytes // (1024 * 1024)
        if not attempt.file_name:
            return attempt.fail("Please select a PDF file")
        if not is_pdf(attempt.file_name, attempt.content_type):
            return attempt.fail("Please select a PDF file")
        if attempt.size <= 0:
            return attempt.fail("The selected file is empty")
        if attempt.size > self.config.max_upload_bytes:
            return attempt.fail(f"File size must be less than {limit_mb}MB")
        return attempt

    def process(self, user_id: str, file_name: str, content_type: Optional[str], data: bytes) -> UploadAttempt:
        if self.mode not in EXTRACTION_MODES:
            raise ValidationError(f"Unknown extraction mode: {self.mode}")
        attempt = self.select(file_name, content_type, len(data or b""))
        if attempt.state is UploadState.FAILED:
            logger.info("rejected %r: %s", file_name, attempt.message)
            return attempt

        attempt.advance(UploadState.UPLOADING)
        try:
            attempt.upload = self.store.uploads.create(user_id, attempt.file_name, attempt.size)
        except ProviderError as exc:
            return attempt.fail(str(exc))
        upload_id = attempt.upload.id
        path = self.storage.object_path(user_id, upload_id, attempt.file_name)
        try:
            self.storage.upload(path, data)
            self.store.uploads.set_storage_path(upload_id, path)
        except (ProviderError, ValidationError) as exc:
            logger.error("storage failed for upload %s: %s", upload_id, exc)
            self._mark_failed(upload_id, str(exc))
            return attempt.fail(str(exc))

        attempt.advance(UploadState.EXTRACTING)
        try:
            parsed = extract_pdf(data)
            attempt.text = parsed["text"]
            if self.mode == "ai":
                results = self._analyze(attempt, user_id, upload_id)
            else:
                results = {
                    "mode": "local",
                    "numpages": parsed["numpages"],
                    "metadata": parsed["metadata"],
                    "text": parsed["text"],
                }
            self.store.uploads.set_analysis(upload_id, results)
            attempt.upload = self.store.uploads.update_status(upload_id, "completed")
        except (ExtractionError, ProviderError, ValidationError) as exc:
            logger.error("extraction failed for upload %s: %s", upload_id, exc)
            self._mark_failed(upload_id, str(exc))
            return attempt.fail(EXTRACTION_FAILED_MESSAGE)

        attempt.advance(UploadState.COMPLETED)
        logger.info("upload %s completed in %s mode", upload_id, self.mode)
        return attempt

    def _analyze(self, attempt: UploadAttempt, user_id: str, upload_id: str) -> Dict:
        if self.analyzer is None:
            raise ExtractionError("AI extraction is not configured")
        analysis = self.analyzer.analyze(attempt.text or "")
        attempt.analysis = analysis
        rows = to_transaction_rows(analysis, upload_id, user_id, self.config.rules)
        # Extracted rows and map spending land together or not at all.
        with self.store.atomic("import analysis"):
            transaction_count = len(self.store.transactions.create_many(rows, commit=False))
            imported_locations = self.import_to_map(user_id, analysis, commit=False)
        attempt.transaction_count = transaction_count
        attempt.imported_locations = imported_locations
        return {
            "mode": "ai",
            "analysis": analysis.to_json(),
            "transaction_count": transaction_count,
            "imported_locations": imported_locations,
        }

    def import_to_map(self, user_id: str, analysis: SpendingAnalysis, commit: bool = True) -> int:
        """Add analyzed spending to the user's locations; returns locations created.

        Amounts keep their sign, so refunds lower a location's total. Zero
        amounts are skipped. With ``commit=False`` the caller owns the
        transaction.
        """
        if commit:
            with self.store.atomic("import to map"):
                return self.import_to_map(user_id, analysis, commit=False)

        created = 0
        fallback_date = analysis.summary.date_range.end if analysis.summary and analysis.summary.date_range else None
        for loc in analysis.locations:
            location = self.store.locations.find_by_name(user_id, loc.name)
            if location is None:
                category = loc.category or categorize_merchant(loc.name, self.config.rules)
                location = self.store.locations.create(user_id, loc.name, category, commit=False)
                created += 1
            if loc.transactions:
                entries = [(txn.amount, txn.date, txn.description) for txn in loc.transactions]
            else:
                entries = [(loc.total_spent, fallback_date, "Statement total")]
            for amount, when, description in entries:
                if amount:
                    self.store.amounts.create(location.id, amount, when, description, commit=False)
        return created

    def _mark_failed(self, upload_id: str, message: str) -> None:
        try:
            self.store.uploads.update_status(upload_id, "failed", error_message=message)
        except ProviderError as exc:
            logger.error("could not mark upload %s failed: %s", upload_id, exc)
