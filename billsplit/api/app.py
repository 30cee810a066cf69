import logging
import os
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Callable

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billsplit.api.charges import CUSTOMER_TYPES, NON_DOMESTIC_ICPT_RATES, BillResult, ChargeConfigError
from billsplit.api.expression import ExpressionError, evaluate_expression
from billsplit.api.state_codec import (
    BillConfig,
    StateDecodeError,
    build_share_link,
    config_to_payload,
    decode_state,
    default_config,
    encode_state,
    payload_to_config,
)
from billsplit.api.tiers import Unbounded

load_dotenv()


def configure_logging() -> logging.Logger:
    logs_dir = Path(os.getenv("BILLSPLIT_LOG_DIR", "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s - %(message)s")
    file_handler = TimedRotatingFileHandler(
        logs_dir / "billsplit_api.log",
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
        named = logging.getLogger(logger_name)
        named.handlers.clear()
        named.propagate = True

    return logging.getLogger("billsplit_api")


logger = configure_logging()


def get_public_url() -> str:
    return os.getenv("BILLSPLIT_PUBLIC_URL", "http://localhost:8080/")


def serialize_bound(band_end: Any) -> float | None:
    if isinstance(band_end, Unbounded):
        return None
    return band_end.value


def serialize_bill(result: BillResult) -> dict[str, Any]:
    return {
        "tiers": [
            {
                "tierId": tier.tier_id,
                "from": tier.start,
                "to": serialize_bound(tier.end),
                "rate": tier.rate,
                "usage": tier.usage,
                "cost": tier.cost,
            }
            for tier in result.tiers
        ],
        "tenants": [
            {
                "tenantId": tenant.tenant_id,
                "name": tenant.name,
                "consumption": tenant.consumption,
                "breakdown": [
                    {"tierId": item.tier_id, "usage": item.usage, "rate": item.rate, "cost": item.cost}
                    for item in tenant.breakdown
                ],
                "baseCost": tenant.base_cost,
                "adjustment": tenant.adjustment,
                "tax": tenant.tax,
                "total": tenant.total,
            }
            for tenant in result.tenants
        ],
        "totalConsumption": result.total_consumption,
        "baseTotal": result.base_total,
        "adjustment": result.adjustment.amount,
        "adjustmentRate": result.adjustment.rate,
        "adjustmentLabel": result.adjustment.label,
        "isRebate": result.adjustment.is_rebate,
        "taxRatePercent": result.tax_rate_percent,
        "taxApplied": result.tax_applied,
        "tax": result.tax,
        "grandTotal": result.grand_total,
    }


def config_from_body(body: dict[str, Any]) -> BillConfig:
    customer_type = body.get("customerType")
    if customer_type is not None and (not isinstance(customer_type, str) or customer_type not in CUSTOMER_TYPES):
        raise HTTPException(status_code=400, detail="customerType must be 'domestic' or 'nonDomestic'")
    category = body.get("category")
    if category is not None and (not isinstance(category, str) or category not in NON_DOMESTIC_ICPT_RATES):
        allowed = ", ".join(sorted(NON_DOMESTIC_ICPT_RATES))
        raise HTTPException(status_code=400, detail=f"category must be one of: {allowed}")

    try:
        config = payload_to_config(body)
    except StateDecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    # tenants may carry a keypad expression instead of a plain reading
    raw_tenants = body.get("tenants") or []
    for position, (tenant, raw) in enumerate(zip(list(config.tenants), raw_tenants), start=1):
        expression = raw.get("expression")
        if not expression:
            continue
        try:
            config.tenants.set_consumption_expression(tenant.id, str(expression))
        except ExpressionError as exc:
            raise HTTPException(status_code=422, detail=f"{tenant.display_name(position)}: {exc}") from exc
    return config


def bill_response(config: BillConfig) -> dict[str, Any]:
    try:
        result = config.compute()
    except ChargeConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    token = encode_state(config)
    return {
        "config": config_to_payload(config),
        "bill": serialize_bill(result),
        "token": token,
        "link": build_share_link(get_public_url(), token),
    }


app = FastAPI(title="Bill Split API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def auth_middleware(request: Request, call_next: Callable[..., Any]) -> JSONResponse:
    if request.url.path.startswith("/api"):
        auth_token = os.getenv("BILLSPLIT_AUTH_TOKEN", "").strip()
        if auth_token:
            provided = request.headers.get("X-Auth-Token", "") or request.query_params.get("token", "")
            if provided != auth_token:
                return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


@app.get("/api/health")
def get_health() -> dict[str, Any]:
    return {"serverTime": datetime.now().isoformat(), "status": "ok"}


@app.get("/api/defaults")
def get_defaults() -> dict[str, Any]:
    config = default_config()
    return {"config": config_to_payload(config), "token": encode_state(config)}


@app.get("/api/bill")
def get_bill(state: str | None = None) -> dict[str, Any]:
    return bill_response(decode_state(state))


@app.post("/api/bill")
def post_bill(body: dict[str, Any] = Body(...)) -> dict[str, Any]:
    return bill_response(config_from_body(body))


@app.post("/api/share")
def post_share(body: dict[str, Any] = Body(...)) -> dict[str, Any]:
    token = encode_state(config_from_body(body))
    return {"token": token, "link": build_share_link(get_public_url(), token)}


@app.post("/api/evaluate")
def post_evaluate(expression: str = Body(..., embed=True)) -> dict[str, Any]:
    try:
        value = evaluate_expression(expression)
    except ExpressionError as exc:
        logger.info("Rejected consumption expression %r: %s", expression[:100], exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"expression": expression, "value": value}
