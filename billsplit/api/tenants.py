from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from billsplit.api.expression import evaluate_expression
from billsplit.api.tiers import coerce_number, new_id


logger = logging.getLogger(__name__)


def coerce_consumption(value: Any) -> float:
    return max(0.0, coerce_number(value))


@dataclass(frozen=True)
class Tenant:
    id: str
    name: str = ""
    consumption: float = 0.0
    expression: str | None = None

    def display_name(self, position: int) -> str:
        return self.name.strip() or f"Unit {position}"


def make_tenant(name: str = "", consumption: Any = 0.0, tenant_id: str | None = None) -> Tenant:
    return Tenant(id=tenant_id or new_id(), name=str(name or ""), consumption=coerce_consumption(consumption))


@dataclass
class TenantSet:
    tenants: list[Tenant] = field(default_factory=list)

    def __iter__(self):
        return iter(self.tenants)

    def __len__(self) -> int:
        return len(self.tenants)

    def get(self, tenant_id: str) -> Tenant | None:
        return next((tenant for tenant in self.tenants if tenant.id == tenant_id), None)

    @property
    def total_consumption(self) -> float:
        return sum(tenant.consumption for tenant in self.tenants)

    def add_tenant(self, name: str = "", consumption: Any = 0.0) -> Tenant:
        tenant = make_tenant(name, consumption)
        self.tenants.append(tenant)
        return tenant

    def _replace(self, updated: Tenant) -> None:
        self.tenants = [updated if t.id == updated.id else t for t in self.tenants]

    def update_tenant(self, tenant_id: str, field_name: str, value: Any) -> None:
        tenant = self.get(tenant_id)
        if tenant is None:
            logger.debug("Ignoring update for unknown tenant id=%s", tenant_id)
            return
        if field_name == "name":
            self._replace(replace(tenant, name=str(value or "")))
        elif field_name == "consumption":
            # a typed literal supersedes any earlier expression memo
            self._replace(replace(tenant, consumption=coerce_consumption(value), expression=None))
        else:
            logger.debug("Ignoring update for unknown tenant field=%s", field_name)

    def set_consumption_expression(self, tenant_id: str, text: str) -> float:
        """Store the evaluated expression as the tenant's consumption.

        Raises ExpressionError without touching the tenant when the text does
        not evaluate.
        """
        tenant = self.get(tenant_id)
        if tenant is None:
            raise KeyError(tenant_id)
        value = evaluate_expression(text)
        self._replace(replace(tenant, consumption=value, expression=text.strip()))
        return value

    def remove_tenant(self, tenant_id: str) -> bool:
        before = len(self.tenants)
        self.tenants = [t for t in self.tenants if t.id != tenant_id]
        return len(self.tenants) != before


def default_tenants() -> TenantSet:
    return TenantSet(tenants=[make_tenant()])
