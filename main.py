import argparse
import json
import logging
import math
from logging.handlers import TimedRotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from dotenv import load_dotenv

from billsplit.api.charges import CUSTOMER_TYPES, NON_DOMESTIC_ICPT_RATES, BillResult, ChargeConfigError
from billsplit.api.expression import ExpressionError
from billsplit.api.state_codec import (
    STATE_PARAM,
    BillConfig,
    StateDecodeError,
    build_share_link,
    decode_state,
    default_config,
    encode_state,
    payload_to_config,
)
from billsplit.api.tenants import TenantSet
from billsplit.api.tiers import Unbounded
from readings_csv import parse_readings_csv


class ConfigError(Exception):
    """Raised when the command line or an input file is unusable."""


def configure_logging() -> logging.Logger:
    logs_dir = Path(os.getenv("BILLSPLIT_LOG_DIR", "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("billsplit")
    logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(threadName)s] %(name)s - %(message)s"
    )

    file_handler = TimedRotatingFileHandler(
        logs_dir / "billsplit_cli.log",
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    # stdout carries the bill itself
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.WARNING)

    logger.handlers.clear()
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def extract_token(raw: str) -> str:
    """Accept either a bare token or a full share link."""
    value = raw.strip()
    if "?" not in value and f"{STATE_PARAM}=" not in value:
        return value
    query = urlparse(value).query or value.split("?", 1)[-1]
    values = parse_qs(query).get(STATE_PARAM)
    return values[0] if values else ""


def load_config_file(path: Path) -> BillConfig:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc

    try:
        config = payload_to_config(payload)
    except StateDecodeError as exc:
        raise ConfigError(f"Config file {path} is malformed: {exc}") from exc

    raw_tenants = payload.get("tenants") or []
    for position, (tenant, raw) in enumerate(zip(list(config.tenants), raw_tenants), start=1):
        expression = raw.get("expression")
        if not expression:
            continue
        try:
            config.tenants.set_consumption_expression(tenant.id, str(expression))
        except ExpressionError as exc:
            raise ConfigError(f"{tenant.display_name(position)}: {exc}") from exc
    return config


def load_readings(path: Path) -> TenantSet:
    try:
        readings = parse_readings_csv(path)
    except OSError as exc:
        raise ConfigError(f"Cannot read readings file {path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    tenants = TenantSet()
    for reading in readings:
        tenant = tenants.add_tenant(reading["name"], reading["consumption"])
        if reading["expression"]:
            tenants.set_consumption_expression(tenant.id, reading["expression"])
    return tenants


def build_config(args: argparse.Namespace) -> BillConfig:
    if args.config and args.state:
        raise ConfigError("Use either --config or --state, not both")

    if args.config:
        config = load_config_file(Path(args.config))
    elif args.state:
        config = decode_state(extract_token(args.state))
    else:
        config = default_config()

    if args.readings:
        config.tenants = load_readings(Path(args.readings))
    if args.tax_rate is not None:
        config.tax_rate_percent = args.tax_rate
    if args.customer_type:
        config.customer_type = args.customer_type
    if args.category:
        config.category = args.category
    return config


def finite_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}") from exc
    if not math.isfinite(value):
        raise argparse.ArgumentTypeError(f"must be a finite number: {raw!r}")
    return value


def _money(value: float) -> str:
    return f"RM{value:,.2f}"


def _bound(start: float, end: Any) -> str:
    upper = "∞" if isinstance(end, Unbounded) else f"{end.value:g}"
    return f"{start:g} - {upper}"


def format_bill(result: BillResult) -> str:
    lines = ["Tier breakdown", f"{'Range':<16}{'kWh':>12}{'Rate':>10}{'Cost':>14}"]
    for tier in result.tiers:
        lines.append(
            f"{_bound(tier.start, tier.end):<16}{tier.usage:>12.2f}{tier.rate:>10.3f}{_money(tier.cost):>14}"
        )
    lines.append(f"Total base cost: {_money(result.base_total)}")
    lines.append("")

    adjustment = result.adjustment
    sign = " (rebate)" if adjustment.is_rebate else ""
    lines.append(f"ICPT ({adjustment.label}): {_money(adjustment.amount)}{sign}")
    if result.tax_applied:
        lines.append(f"Service tax ({result.tax_rate_percent:g}%): {_money(result.tax)}")
    lines.append("")

    lines.append(f"{'Unit':<20}{'kWh':>12}{'Base':>14}{'ICPT':>12}{'Tax':>12}{'Total':>14}")
    for tenant in result.tenants:
        lines.append(
            f"{tenant.name:<20}{tenant.consumption:>12.2f}{_money(tenant.base_cost):>14}"
            f"{_money(tenant.adjustment):>12}{_money(tenant.tax):>12}{_money(tenant.total):>14}"
        )
    lines.append("")
    lines.append(f"Grand total: {_money(result.grand_total)} for {result.total_consumption:.2f} kWh")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logger = configure_logging()

    parser = argparse.ArgumentParser(description="Split a shared tiered electricity bill between co-tenants")
    parser.add_argument("--config", help="JSON configuration file (same shape as the share payload)")
    parser.add_argument("--state", help="Share token or full share link to load")
    parser.add_argument("--readings", help="CSV of tenant readings (Unit,kWh) replacing the configured tenants")
    parser.add_argument("--tax-rate", type=finite_float, help="Service tax rate in percent")
    parser.add_argument("--customer-type", choices=CUSTOMER_TYPES)
    parser.add_argument("--category", choices=sorted(NON_DOMESTIC_ICPT_RATES))
    parser.add_argument("--share", action="store_true", help="Print the share link instead of the bill")
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        if args.share:
            token = encode_state(config)
            print(build_share_link(os.getenv("BILLSPLIT_PUBLIC_URL", "http://localhost:8080/"), token))
            return 0

        result = config.compute()
        logger.info(
            "Computed bill for %s tenants, %.4f kWh, grand total %.4f",
            len(result.tenants),
            result.total_consumption,
            result.grand_total,
        )
        print(format_bill(result))
        return 0
    except (ConfigError, ChargeConfigError):
        logger.exception("Configuration error")
        return 2
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
