from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from typing import Any

from flask import Flask, current_app

from ..errors import (
    ConnectionUnavailableError,
    NotFoundError,
    SettingsLockTimeoutError,
    StorageError,
    ValidationError,
)
from ..extensions import db
from ..models import SETTING_VALUE_TYPES, Setting
from saripos.time_utils import utcnow
from .concurrency import run_in_transaction, run_read
from .connection_service import release_session_connection

HARDCODED_PAGE_SIZE = 20
HARDCODED_PAGE_SIZE_OPTIONS = [5, 10, 20, 50, 100]
PAGE_SIZE_KEY_PREFIX = "page_size_"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


# key -> (value, value_type, description)
DEFAULT_SETTINGS: dict[str, tuple[Any, str, str]] = {
    "shop_name": ("My Retail Store", "string", "Name of the shop/business"),
    "shop_address": ("123 Main Street", "string", "Shop physical address"),
    "shop_contact": ("09123456789", "string", "Shop contact number"),
    "receipt_footer": ("Thank you for shopping with us!", "string", "Text to show at receipt bottom"),
    "currency_symbol": ("₱", "string", "Currency symbol to use"),
    "tax_rate": (0.12, "number", "VAT/sales tax rate (as decimal)"),
    "enable_barcode_scanner": (True, "boolean", "Whether to enable barcode scanner"),
    "inventory_warning_threshold": (5, "number", "Low stock warning level"),
    "default_print_receipt": (True, "boolean", "Whether to print receipts by default"),
    "theme": ("light", "string", "UI theme (light/dark/system)"),
    "backup_auto": (True, "boolean", "Enable automatic backups"),
    "backup_frequency": (7, "number", "Days between automatic backups"),
    "pagination_enabled": (True, "boolean", "Whether pagination is enabled"),
    "default_page_size": (5, "number", "Default number of items per page"),
    "page_size_options": ([5, 10, 20, 50, 100], "json", "Available page size options"),
    "remember_page_size": (True, "boolean", "Remember last used page size per view"),
}


# ----------------------------------------------------------------------
# value encoding
# ----------------------------------------------------------------------


def infer_value_type(value: Any) -> str:
    # bool is an int subclass, so it must be checked first
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "json"


def encode_setting_value(value: Any, value_type: str) -> str:
    if value_type not in SETTING_VALUE_TYPES:
        raise ValidationError(f"Unknown setting value type: {value_type}")

    if value_type == "boolean":
        if not isinstance(value, bool):
            raise ValidationError("Boolean setting requires true or false")
        return "true" if value else "false"
    if value_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("Number setting requires a numeric value")
        return str(value)
    if value_type == "json":
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            raise ValidationError("Setting value is not JSON serializable")
    return str(value)


def decode_setting_value(raw: str | None, value_type: str) -> Any:
    """Decode a stored value; a malformed value comes back as the raw string."""
    if raw is None:
        return None
    try:
        if value_type == "number":
            number = float(raw)
            return int(number) if number.is_integer() else number
        if value_type == "boolean":
            return raw.lower() == "true"
        if value_type == "json":
            return json.loads(raw)
    except ValueError as exc:
        current_app.logger.warning(
            "Failed to decode setting value %r as %s: %s", raw, value_type, exc
        )
    return raw


def _setting_payload(row: Setting) -> dict:
    payload = row.to_dict()
    payload["value"] = decode_setting_value(row.value, row.value_type)
    return payload


# ----------------------------------------------------------------------
# write serialization
# ----------------------------------------------------------------------


class SettingsWriteLock:
    """
    App-owned lock serializing settings writers.

    Waiting is bounded by SETTINGS_LOCK_TIMEOUT_SECONDS; a writer that
    cannot get the lock in time fails with SettingsLockTimeoutError.
    """

    def __init__(self, app: Flask | None = None):
        self._lock = threading.Lock()
        self.timeout = 5.0
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.timeout = float(app.config.get("SETTINGS_LOCK_TIMEOUT_SECONDS", 5.0))
        app.extensions["settings_write_lock"] = self

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self):
        if not self._lock.acquire(timeout=self.timeout):
            current_app.logger.warning(
                "Timed out after %.1fs waiting for the settings write lock", self.timeout
            )
            raise SettingsLockTimeoutError(
                "Another settings update is in progress",
                details={"timeout_seconds": self.timeout},
            )
        try:
            yield
        finally:
            self._lock.release()


def get_settings_write_lock() -> SettingsWriteLock:
    return current_app.extensions["settings_write_lock"]


def _normalize_entry(entry: dict) -> tuple[str, str, str, str | None]:
    if not isinstance(entry, dict) or "key" not in entry or "value" not in entry:
        raise ValidationError("Each setting needs a key and a value")

    key = entry["key"]
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("Setting key must be a non-empty string")
    key = key.strip()
    if len(key) > 128:
        raise ValidationError("Setting key exceeds max length 128")

    value = entry["value"]
    value_type = entry.get("value_type") or infer_value_type(value)
    if value_type not in SETTING_VALUE_TYPES:
        raise ValidationError(
            f"Unknown setting value type: {value_type}",
            details={"allowed": list(SETTING_VALUE_TYPES)},
        )
    return key, encode_setting_value(value, value_type), value_type, entry.get("description")


def _upsert_row(key: str, encoded: str, value_type: str, description: str | None) -> None:
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None:
        row = Setting(key=key)
        db.session.add(row)
        if description is None and key in DEFAULT_SETTINGS:
            description = DEFAULT_SETTINGS[key][2]
    row.value = encoded
    row.value_type = value_type
    if description is not None:
        row.description = description
    row.updated_at = utcnow()
    db.session.flush()


def set_multiple_settings(entries: list[dict]) -> None:
    """
    Write several settings as one transaction.

    entries: [{"key", "value", "value_type"?, "description"?}, ...]
    Either every row is written or none is.
    """
    if not isinstance(entries, (list, tuple)) or not entries:
        raise ValidationError("No settings provided")
    normalized = [_normalize_entry(entry) for entry in entries]

    # Give back any connection held by earlier reads; the lock holder may be
    # waiting for it.
    release_session_connection()
    with get_settings_write_lock().hold():
        def _op():
            for key, encoded, value_type, description in normalized:
                _upsert_row(key, encoded, value_type, description)

        run_in_transaction(_op)


def set_setting(key: str, value: Any, *, value_type: str | None = None, description: str | None = None) -> None:
    set_multiple_settings(
        [{"key": key, "value": value, "value_type": value_type, "description": description}]
    )


# ----------------------------------------------------------------------
# reads
# ----------------------------------------------------------------------


def get_setting(key: str, default: Any = MISSING) -> Any:
    """
    Typed value of a setting.

    With a default: returned when the key is absent or the value cannot be
    read at all (ConnectionUnavailableError or StorageError); read failures
    are logged. Without one: NotFoundError, ConnectionUnavailableError or
    StorageError propagate.
    """
    try:
        row = run_read(lambda: db.session.query(Setting).filter_by(key=key).first())
    except (ConnectionUnavailableError, StorageError) as exc:
        if default is MISSING:
            raise
        current_app.logger.warning("Using default for setting %s: %s", key, exc.message)
        return default

    if row is None:
        if default is MISSING:
            raise NotFoundError(f"Setting {key} not found", details={"key": key})
        return default
    return decode_setting_value(row.value, row.value_type)


def get_all_settings() -> dict[str, dict]:
    rows = run_read(lambda: db.session.query(Setting).order_by(Setting.key.asc()).all())
    return {row.key: _setting_payload(row) for row in rows}


def get_setting_record(key: str) -> dict:
    row = run_read(lambda: db.session.query(Setting).filter_by(key=key).first())
    if row is None:
        raise NotFoundError(f"Setting {key} not found", details={"key": key})
    return _setting_payload(row)


def ensure_default_settings() -> int:
    """Insert any missing catalog defaults; existing values are left alone. Returns rows inserted."""
    def _op():
        existing = {k for (k,) in db.session.query(Setting.key).all()}
        inserted = 0
        for key, (value, value_type, description) in DEFAULT_SETTINGS.items():
            if key in existing:
                continue
            db.session.add(
                Setting(
                    key=key,
                    value=encode_setting_value(value, value_type),
                    value_type=value_type,
                    description=description,
                    updated_at=utcnow(),
                )
            )
            inserted += 1
        return inserted

    return run_in_transaction(_op)


def reset_setting(key: str) -> Any:
    """Restore the catalog default for `key`; returns the restored value."""
    if key not in DEFAULT_SETTINGS:
        raise NotFoundError(f"Setting {key} has no default", details={"key": key})
    value, value_type, description = DEFAULT_SETTINGS[key]
    set_setting(key, value, value_type=value_type, description=description)
    return value


# ----------------------------------------------------------------------
# pagination preferences
# ----------------------------------------------------------------------


def _valid_size(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _safe_setting(key: str, default: Any) -> Any:
    try:
        return get_setting(key, default)
    except Exception as exc:
        current_app.logger.warning("Falling back to default for setting %s: %s", key, exc)
        return default


def get_page_size(view_key: str | None = None) -> int:
    """
    Resolve the page size for a view. Never raises.

    Order: per-view override (when remember_page_size is on), then
    default_page_size, then the hardcoded fallback.
    """
    if view_key and _safe_setting("remember_page_size", True):
        size = _safe_setting(f"{PAGE_SIZE_KEY_PREFIX}{view_key}", None)
        if _valid_size(size):
            return size

    size = _safe_setting("default_page_size", None)
    if _valid_size(size):
        return size
    return HARDCODED_PAGE_SIZE


def get_page_size_options() -> list[int]:
    options = _safe_setting("page_size_options", None)
    if isinstance(options, list) and options and all(_valid_size(o) for o in options):
        return options
    return list(HARDCODED_PAGE_SIZE_OPTIONS)


def set_page_size(size: int, view_key: str | None = None) -> str:
    """Persist a page size; returns the key that was written."""
    options = get_page_size_options()
    if not _valid_size(size) or size not in options:
        raise ValidationError(
            f"Page size must be one of: {', '.join(str(o) for o in options)}",
            details={"allowed": options},
        )

    if view_key and get_setting("remember_page_size", True):
        key = f"{PAGE_SIZE_KEY_PREFIX}{view_key}"
        description = f"Page size for {view_key}"
    else:
        key = "default_page_size"
        description = None

    set_setting(key, size, value_type="number", description=description)
    return key


def get_pagination_config() -> dict:
    return {
        "enabled": bool(_safe_setting("pagination_enabled", True)),
        "default_size": get_page_size(),
        "options": get_page_size_options(),
        "remember_per_view": bool(_safe_setting("remember_page_size", True)),
    }
