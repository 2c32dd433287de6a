"""Configuration utilities for Map Engine.

Provides default categorization rules, the suggested category set, and an
``AppConfig`` loader that layers a JSON file and environment variables on
top of the defaults.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .errors import ValidationError

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent

ENV_PREFIX = "MAP_ENGINE_"

LAYOUTS = ("grid", "row")
PALETTES = ("category", "cycle")
EXTRACTION_MODES = ("local", "ai")

# Suggested categories shown in the location forms. Not enforced.
SUGGESTED_CATEGORIES: List[str] = [
    "Restaurant",
    "Groceries",
    "Retail",
    "Entertainment",
    "Services",
    "Transportation",
    "Gas",
    "Healthcare",
    "Education",
    "The Internet",
    "Other",
]

# Keyword rules used to guess a category for merchant names coming out of
# statement analysis. Keys: category names. Values: lowercase keywords.
DEFAULT_RULES: Dict[str, List[str]] = {
    "Restaurant": ["starbucks", "mcdonald", "ubereats", "doordash", "grubhub", "restaurant", "cafe", "diner", "pizza", "taco", "grill", "coffee"],
    "Groceries": ["whole foods", "trader joe", "kroger", "safeway", "aldi", "heb", "grocery", "market"],
    "Retail": ["amazon", "target", "walmart", "best buy", "ebay", "costco", "store"],
    "Entertainment": ["netflix", "spotify", "hulu", "movie", "theater", "cinema", "concert", "ticketmaster"],
    "Services": ["comcast", "xfinity", "verizon", "at&t", "electric", "water", "insurance", "laundry"],
    "Transportation": ["uber", "lyft", "metro", "transit", "parking", "airline", "delta", "united"],
    "Gas": ["shell", "exxon", "chevron", "bp ", "mobil", "gas station", "fuel"],
    "Healthcare": ["pharmacy", "cvs", "walgreens", "doctor", "dentist", "clinic", "hospital", "copay"],
    "Education": ["tuition", "university", "college", "bookstore", "coursera", "udemy"],
    "The Internet": ["google", "icloud", "dropbox", "github", "domain", "hosting"],
    "Other": [],
}


@dataclass
class GeometrySettings:
    base_height: float = 1.0
    # One tenth of the base height per dollar spent.
    height_per_dollar: float = 0.1
    spacing: float = 3.0
    footprint: float = 2.0
    layout: str = "grid"
    palette: str = "category"


@dataclass
class AppConfig:
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'map_engine.db'}"
    secret_key: str = "dev"
    storage_root: str = str(PROJECT_ROOT / "storage")
    bucket: str = "bank-statements"
    max_upload_bytes: int = 10 * 1024 * 1024
    signed_url_expiry: int = 3600
    extraction_mode: str = "local"
    ai_model: str = "claude-sonnet-4-5"
    ai_max_tokens: int = 8192
    anthropic_api_key: Optional[str] = None
    log_level: str = "INFO"
    geometry: GeometrySettings = field(default_factory=GeometrySettings)
    rules: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_RULES))
    categories: List[str] = field(default_factory=lambda: list(SUGGESTED_CATEGORIES))

    @staticmethod
    def load(config_path: Optional[str | Path] = None, use_env: bool = True) -> "AppConfig":
        """Load config: defaults, then a JSON file if provided, then env vars.

        JSON format mirrors the field names, e.g.
        {
          "database_url": "sqlite:////tmp/map.db",
          "extraction_mode": "ai",
          "geometry": {"layout": "row", "palette": "cycle"},
          "rules": {"Groceries": ["market"]}
        }
        """

        cfg = AppConfig()

        if config_path:
            p = Path(config_path)
            if p.exists():
                with p.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    cfg = cfg.merged(raw)

        if use_env:
            load_dotenv()
            cfg = cfg.merged(_env_overrides())
        cfg.validate()
        return cfg

    def validate(self) -> "AppConfig":
        """Reject option values the app cannot run with."""
        problems = []
        if self.extraction_mode not in EXTRACTION_MODES:
            problems.append(f"extraction_mode must be one of {', '.join(EXTRACTION_MODES)}, got {self.extraction_mode!r}")
        if self.geometry.layout not in LAYOUTS:
            problems.append(f"geometry.layout must be one of {', '.join(LAYOUTS)}, got {self.geometry.layout!r}")
        if self.geometry.palette not in PALETTES:
            problems.append(f"geometry.palette must be one of {', '.join(PALETTES)}, got {self.geometry.palette!r}")
        if self.max_upload_bytes <= 0:
            problems.append("max_upload_bytes must be positive")
        if problems:
            raise ValidationError("Invalid configuration: " + "; ".join(problems))
        return self

    def merged(self, raw: Dict) -> "AppConfig":
        """Return a copy with known keys of ``raw`` applied."""
        updates = {}
        scalar_names = {f.name for f in fields(self)} - {"geometry", "rules", "categories"}
        for name in scalar_names:
            if name in raw and raw[name] is not None:
                current = getattr(self, name)
                updates[name] = type(current)(raw[name]) if current is not None else raw[name]
        if isinstance(raw.get("geometry"), dict):
            geo_names = {f.name for f in fields(GeometrySettings)}
            geo = {k: v for k, v in raw["geometry"].items() if k in geo_names}
            updates["geometry"] = replace(self.geometry, **geo)
        if isinstance(raw.get("rules"), dict):
            # Normalize all keywords to lowercase
            updates["rules"] = {
                str(cat): [str(k).lower() for k in (kw or [])]
                for cat, kw in raw["rules"].items()
            }
        if isinstance(raw.get("categories"), list):
            updates["categories"] = [str(c) for c in raw["categories"]]
        return replace(self, **updates)


def _env_overrides() -> Dict:
    env = os.environ
    raw: Dict = {}
    for key in (
        "database_url",
        "secret_key",
        "storage_root",
        "bucket",
        "max_upload_bytes",
        "signed_url_expiry",
        "extraction_mode",
        "ai_model",
        "ai_max_tokens",
    ):
        value = env.get(ENV_PREFIX + key.upper())
        if value:
            raw[key] = value
    if env.get("ANTHROPIC_API_KEY"):
        raw["anthropic_api_key"] = env["ANTHROPIC_API_KEY"]
    if env.get("LOG_LEVEL"):
        raw["log_level"] = env["LOG_LEVEL"]
    return raw
