from __future__ import annotations

import base64
import json
import logging
import zlib
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from billsplit.api.charges import CUSTOMER_TYPES, DOMESTIC, NON_DOMESTIC_ICPT_RATES, BillResult, compute_bill
from billsplit.api.tenants import TenantSet, default_tenants, make_tenant
from billsplit.api.tiers import TierSchedule, Unbounded, coerce_number, default_schedule, make_band


logger = logging.getLogger(__name__)

STATE_VERSION = 1
STATE_PARAM = "state"
UNBOUNDED_SENTINEL = {"$bound": "unbounded"}

DEFAULT_TAX_RATE_PERCENT = 8.0
DEFAULT_CATEGORY = "lv"

# inflated payload cap; a real config is a few hundred bytes
MAX_STATE_BYTES = 64 * 1024


class StateDecodeError(ValueError):
    """Raised internally when a share token cannot be turned back into a config."""


@dataclass
class BillConfig:
    schedule: TierSchedule = field(default_factory=default_schedule)
    tenants: TenantSet = field(default_factory=default_tenants)
    tax_rate_percent: float = DEFAULT_TAX_RATE_PERCENT
    customer_type: str = DOMESTIC
    category: str = DEFAULT_CATEGORY

    def compute(self) -> BillResult:
        return compute_bill(self.schedule, self.tenants, self.tax_rate_percent, self.customer_type, self.category)


def default_config() -> BillConfig:
    return BillConfig()


def config_to_payload(config: BillConfig) -> dict[str, Any]:
    return {
        "v": STATE_VERSION,
        "tiers": [
            {
                "from": band.start,
                "to": dict(UNBOUNDED_SENTINEL) if isinstance(band.end, Unbounded) else band.end.value,
                "rate": band.rate,
            }
            for band in config.schedule
        ],
        "tenants": [{"name": t.name, "consumption": t.consumption} for t in config.tenants],
        "taxRate": config.tax_rate_percent,
        "customerType": config.customer_type,
        "category": config.category,
    }


def _parse_bound(raw: Any) -> float | None:
    if raw is None or raw == UNBOUNDED_SENTINEL:
        return None
    if isinstance(raw, dict):
        raise StateDecodeError(f"Unknown bound marker: {raw!r}")
    return coerce_number(raw)


def payload_to_config(payload: Any) -> BillConfig:
    """Build a config from a decoded payload; missing fields take the session defaults."""
    if not isinstance(payload, dict):
        raise StateDecodeError("State payload must be an object")
    version = payload.get("v", STATE_VERSION)
    if version != STATE_VERSION:
        raise StateDecodeError(f"Unsupported state version: {version!r}")

    config = default_config()

    raw_tiers = payload.get("tiers")
    if raw_tiers is not None:
        if not isinstance(raw_tiers, list) or not all(isinstance(t, dict) for t in raw_tiers):
            raise StateDecodeError("tiers must be a list of objects")
        bands = [
            make_band(coerce_number(t.get("from")), _parse_bound(t.get("to")), coerce_number(t.get("rate")))
            for t in raw_tiers
        ]
        config.schedule = TierSchedule(bands=sorted(bands, key=lambda band: band.start))

    raw_tenants = payload.get("tenants")
    if raw_tenants is not None:
        if not isinstance(raw_tenants, list) or not all(isinstance(t, dict) for t in raw_tenants):
            raise StateDecodeError("tenants must be a list of objects")
        config.tenants = TenantSet(tenants=[make_tenant(t.get("name", ""), t.get("consumption")) for t in raw_tenants])

    if "taxRate" in payload:
        config.tax_rate_percent = coerce_number(payload["taxRate"])

    customer_type = payload.get("customerType")
    if isinstance(customer_type, str) and customer_type in CUSTOMER_TYPES:
        config.customer_type = customer_type

    category = payload.get("category")
    if isinstance(category, str) and category in NON_DOMESTIC_ICPT_RATES:
        config.category = category

    return config


def encode_state(config: BillConfig) -> str:
    raw = json.dumps(config_to_payload(config), sort_keys=True, ensure_ascii=True, separators=(",", ":"))
    compressed = zlib.compress(raw.encode("utf-8"), 9)
    return base64.urlsafe_b64encode(compressed).decode("ascii").rstrip("=")


def _decode_token(token: str) -> Any:
    padded = token + "=" * (-len(token) % 4)
    try:
        compressed = base64.urlsafe_b64decode(padded.encode("ascii"))
        inflater = zlib.decompressobj()
        raw = inflater.decompress(compressed, MAX_STATE_BYTES)
        if inflater.unconsumed_tail:
            raise StateDecodeError(f"State payload exceeds {MAX_STATE_BYTES} bytes")
        if not inflater.eof:
            raise StateDecodeError("Truncated state payload")
        return json.loads(raw.decode("utf-8"))
    except (ValueError, RecursionError, zlib.error) as exc:
        raise StateDecodeError(str(exc)) from exc


def decode_state(token: str | None) -> BillConfig:
    """Rebuild a config from a share token.

    Identifiers are never carried in the token, so every tier and tenant gets
    a fresh one. An undecodable token yields the default config.
    """
    if token is None or not token.strip():
        return default_config()
    try:
        return payload_to_config(_decode_token(token.strip()))
    except StateDecodeError as exc:
        logger.warning("Ignoring undecodable share token (%s); using defaults", exc)
        return default_config()


def build_share_link(base_url: str, token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{STATE_PARAM}={quote(token, safe='')}"
