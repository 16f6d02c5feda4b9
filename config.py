"""
Central configuration for the PO manager.

All paths, thresholds, and mail settings are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. config/po_settings.json  (admin-editable, persisted; only the
     runtime-tunable keys listed in Config.__post_init__)
  2. Environment variables
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_OUTPUT_DIR   = PROJECT_ROOT / "output"
DEFAULT_DB_PATH      = DEFAULT_OUTPUT_DIR / "po_manager.db"
DEFAULT_QUEUE_CACHE  = DEFAULT_OUTPUT_DIR / ".po_queue.json"
DEFAULT_EXPORT_DIR   = DEFAULT_OUTPUT_DIR / "export"


@dataclass
class Config:
    # --- Storage ---
    db_path: Path = field(
        default_factory=lambda: Path(os.getenv("PO_DB_PATH", str(DEFAULT_DB_PATH)))
    )
    queue_cache_path: Path = field(
        default_factory=lambda: Path(os.getenv("PO_QUEUE_CACHE", str(DEFAULT_QUEUE_CACHE)))
    )
    # The queue cache is a reconciled projection of product po_status; deleting
    # it is always safe, it is rebuilt from the database on the next load.

    # --- Output settings ---
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("PO_OUTPUT_DIR", str(DEFAULT_OUTPUT_DIR)))
    )
    export_dir: Path = field(
        default_factory=lambda: Path(os.getenv("PO_EXPORT_DIR", str(DEFAULT_EXPORT_DIR)))
    )

    # --- Session actor (authentication itself happens outside this app) ---
    actor_name: Optional[str] = field(default_factory=lambda: os.getenv("PO_ACTOR_NAME"))
    actor_role: str = field(default_factory=lambda: os.getenv("PO_ACTOR_ROLE", "main_admin"))

    # --- Vendor lookup ---
    vendor_fuzzy_threshold: int = 85    # Minimum rapidfuzz score (0-100)

    # --- Download log ---
    default_download_location: str = "Not specified"

    # --- Mail (send PO to vendor) ---
    # Any JSON mail API that accepts a templated POST body, e.g. Brevo:
    #   MAIL_API_URL=https://api.brevo.com/v3/smtp/email  MAIL_API_HEADERS='{"api-key": "..."}'
    mail_api_url: Optional[str] = field(default_factory=lambda: os.getenv("MAIL_API_URL"))
    mail_api_headers_json: Optional[str] = field(
        default_factory=lambda: os.getenv("MAIL_API_HEADERS")
    )
    mail_from_email: str = field(
        default_factory=lambda: os.getenv("MAIL_FROM_EMAIL", "noreply@example.com")
    )
    mail_from_name: str = field(
        default_factory=lambda: os.getenv("MAIL_FROM_NAME", "Purchase Order System")
    )
    mail_cc_email: Optional[str] = field(default_factory=lambda: os.getenv("MAIL_CC_EMAIL"))
    mail_template: str = field(
        default_factory=lambda: os.getenv("MAIL_TEMPLATE", "mail_payload.json.j2")
    )
    mail_timeout_seconds: int = 30

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from po_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "po_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "vendor_fuzzy_threshold":     int,
            "default_download_location":  str,
            "mail_api_url":               str,
            "mail_api_headers_json":      str,
            "mail_from_email":            str,
            "mail_from_name":             str,
            "mail_cc_email":              str,
            "mail_template":              str,
            "mail_timeout_seconds":       int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    setattr(self, key, _type_map[key](val))
        except Exception as exc:
            logger.warning("Failed to load po_settings.json: %s", exc)

    @property
    def config_dir(self) -> Path:
        return Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.export_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.queue_cache_path.parent.mkdir(parents=True, exist_ok=True)
