"""AI statement analysis.

Sends extracted statement text to a generative model with a fixed prompt and
turns the JSON reply into a validated ``SpendingAnalysis``. Numeric strings
("$1,234.50") are coerced and timestamps are cut to their date; anything
that still does not fit the schema is rejected with ``ExtractionError``.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Annotated, Dict, List, Optional

import anthropic
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator, model_validator

from .categorizer import categorize_merchant
from .coerce import parse_amount, parse_date
from .errors import ExtractionError

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """Analyze the following bank statement text and extract all spending information. Group transactions by location and provide a summary.

Format the response as a JSON object with this structure:
{{
  "locations": [
    {{
      "name": string, // Business/merchant name
      "totalSpent": number, // Total amount spent at this location
      "transactions": [
        {{
          "date": string, // YYYY-MM-DD format
          "time": string, // HH:MM format if available
          "amount": number, // Transaction amount
          "description": string // Optional transaction description
        }}
      ],
      "address": string, // Optional
      "city": string, // Optional
      "state": string, // Optional
      "zip": string // Optional
    }}
  ],
  "summary": {{
    "totalSpent": number, // Total amount spent across all locations
    "transactionCount": number, // Total number of transactions
    "dateRange": {{
      "start": string, // Earliest transaction date (YYYY-MM-DD)
      "end": string // Latest transaction date (YYYY-MM-DD)
    }}
  }}
}}

Here's the bank statement text to analyze:

{statement_text}

Only respond with the JSON object, no other text."""


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


CoercedDate = Annotated[dt.date, BeforeValidator(parse_date)]
CoercedAmount = Annotated[float, BeforeValidator(parse_amount)]


class AnalyzedTransaction(_Model):
    date: CoercedDate
    time: Optional[str] = None
    amount: CoercedAmount
    description: Optional[str] = None


class AnalyzedLocation(_Model):
    name: str = Field(min_length=1)
    total_spent: CoercedAmount = Field(alias="totalSpent")
    transactions: List[AnalyzedTransaction] = Field(default_factory=list)
    category: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("location name is empty")
        return value

    @field_validator("category", "address", "city", "state", "zip")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class DateRange(_Model):
    start: CoercedDate
    end: CoercedDate


class AnalysisSummary(_Model):
    total_spent: CoercedAmount = Field(alias="totalSpent")
    transaction_count: int = Field(alias="transactionCount", ge=0)
    date_range: Optional[DateRange] = Field(default=None, alias="dateRange")


class SpendingAnalysis(_Model):
    locations: List[AnalyzedLocation] = Field(default_factory=list)
    summary: Optional[AnalysisSummary] = None

    @model_validator(mode="after")
    def _fill_summary(self) -> "SpendingAnalysis":
        # Derive the summary from the locations when the model left it out.
        if self.summary is None:
            txns = [t for loc in self.locations for t in loc.transactions]
            dates = [t.date for t in txns]
            self.summary = AnalysisSummary(
                total_spent=round(sum(loc.total_spent for loc in self.locations), 2),
                transaction_count=len(txns),
                date_range=DateRange(start=min(dates), end=max(dates)) if dates else None,
            )
        return self

    def to_json(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True)


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(line for line in lines[1:] if not line.startswith("```"))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        text = text[start : end + 1]
    return text


def parse_analysis(text: str) -> SpendingAnalysis:
    """Parse and validate a model reply."""
    if not text or not text.strip():
        raise ExtractionError("Empty response from the AI model")
    try:
        raw = json.loads(_strip_fences(text))
    except json.JSONDecodeError as exc:
        logger.warning("AI response is not valid JSON: %s", exc)
        raise ExtractionError("Invalid JSON response from the AI model") from exc
    if not isinstance(raw, dict):
        raise ExtractionError("AI response must be a JSON object")
    try:
        return SpendingAnalysis.model_validate(raw)
    except ValidationError as exc:
        logger.warning("AI response failed validation: %s", exc)
        raise ExtractionError(f"AI response does not match the expected shape: {exc.error_count()} error(s)") from exc


class StatementAnalyzer:
    """Wraps the Anthropic Messages API; ``client`` may be any object with
    ``messages.create`` returning content blocks with ``.text``."""

    def __init__(self, client=None, model: str = "claude-sonnet-4-5", max_tokens: int = 8192, api_key: Optional[str] = None):
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.api_key = api_key

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ExtractionError("AI API key not configured")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def analyze(self, statement_text: str) -> SpendingAnalysis:
        if not statement_text or not statement_text.strip():
            raise ExtractionError("No text content extracted from PDF")
        prompt = ANALYSIS_PROMPT.format(statement_text=statement_text)
        logger.info("sending %d characters of statement text to %s", len(statement_text), self.model)
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            logger.error("AI request failed: %s", exc)
            raise ExtractionError(f"AI request failed: {exc}") from exc
        text = "".join(getattr(block, "text", "") for block in response.content)
        analysis = parse_analysis(text)
        logger.info(
            "analysis parsed: %d locations, %d transactions",
            len(analysis.locations),
            analysis.summary.transaction_count,
        )
        return analysis


def to_transaction_rows(
    analysis: SpendingAnalysis,
    upload_id: str,
    user_id: str,
    rules: Dict[str, List[str]],
) -> List[Dict]:
    """Flatten an analysis into extracted-transaction field dicts."""
    rows: List[Dict] = []
    for loc in analysis.locations:
        category = loc.category or categorize_merchant(loc.name, rules)
        for txn in loc.transactions:
            rows.append(
                {
                    "upload_id": upload_id,
                    "user_id": user_id,
                    "transaction_date": txn.date,
                    "merchant_name": loc.name,
                    "amount": txn.amount,
                    "category": category,
                    "location_address": loc.address,
                    "location_city": loc.city,
                    "location_state": loc.state,
                    "location_zip": loc.zip,
                    "raw_text": txn.description or loc.name,
                }
            )
    return rows
