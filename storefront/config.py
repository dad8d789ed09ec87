"""
Configuration — environment-driven settings.

    STOREFRONT_API_URL          hosted API base URL (default https://api.chec.io/v1)
    STOREFRONT_PUBLIC_KEY       public API key, sent as X-Authorization
    STOREFRONT_TIMEOUT          per-call timeout in seconds (default 10)
    STOREFRONT_ON_BUSY          queue | reject (default queue)
    STOREFRONT_DEFAULT_COUNTRY  preselected shipping country (default US)
    STOREFRONT_RECEIPT_PATH     receipt JSON file (default ~/.storefront/receipt.json)
    STOREFRONT_RECEIPT_DB       SQLAlchemy URL; when set, receipts go to a database
    STOREFRONT_LOG_LEVEL        DEBUG | INFO | WARNING | ERROR (default INFO)
    STOREFRONT_LOG_JSON         1/true for JSON log lines
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from storefront.cart import OnBusy, SyncPolicy
from storefront.checkout import CheckoutPolicy
from storefront.gateway import DEFAULT_API_URL

PREFIX = "STOREFRONT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _flag(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True, slots=True)
class StorefrontConfig:
    api_url: str = DEFAULT_API_URL
    public_key: str | None = None
    timeout: float = 10.0
    on_busy: OnBusy = OnBusy.QUEUE
    default_country: str | None = "US"
    receipt_path: Path = Path("~/.storefront/receipt.json")
    receipt_db_url: str | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StorefrontConfig:
        """
        Read STOREFRONT_* variables. Invalid values raise ValueError.

        Example:
            config = StorefrontConfig.from_env()
            config = StorefrontConfig.from_env({"STOREFRONT_TIMEOUT": "3"})
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(PREFIX + name)
            return value if value is None else value.strip()

        defaults = cls()

        timeout = defaults.timeout
        if (raw := get("TIMEOUT")) is not None:
            try:
                timeout = float(raw)
            except ValueError:
                raise ValueError(f"{PREFIX}TIMEOUT must be a number, got {raw!r}") from None
            if timeout <= 0:
                raise ValueError(f"{PREFIX}TIMEOUT must be positive, got {raw!r}")

        on_busy = defaults.on_busy
        if (raw := get("ON_BUSY")) is not None:
            try:
                on_busy = OnBusy[raw.upper()]
            except KeyError:
                raise ValueError(f"{PREFIX}ON_BUSY must be queue or reject, got {raw!r}") from None

        log_level = (get("LOG_LEVEL") or defaults.log_level).upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"{PREFIX}LOG_LEVEL is not a log level: {log_level!r}")

        raw_json = get("LOG_JSON")
        receipt_path = get("RECEIPT_PATH")

        return cls(
            api_url=(get("API_URL") or defaults.api_url).rstrip("/"),
            public_key=get("PUBLIC_KEY") or None,
            timeout=timeout,
            on_busy=on_busy,
            default_country=(get("DEFAULT_COUNTRY") or defaults.default_country or "").upper() or None,
            receipt_path=Path(receipt_path) if receipt_path else defaults.receipt_path,
            receipt_db_url=get("RECEIPT_DB") or None,
            log_level=log_level,
            log_json=_flag("LOG_JSON", raw_json) if raw_json is not None else defaults.log_json,
        )

    def sync_policy(self) -> SyncPolicy:
        return SyncPolicy().with_on_busy(self.on_busy).with_timeout(seconds=self.timeout)

    def checkout_policy(self) -> CheckoutPolicy:
        return (
            CheckoutPolicy()
            .with_timeout(seconds=self.timeout)
            .with_default_country(self.default_country)
        )


__all__ = ("StorefrontConfig", "PREFIX")
