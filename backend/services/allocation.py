"""
Which warehouse an order line is fulfilled from.

A policy only *chooses* among candidate stock rows that already have enough
available quantity; it never splits a line across warehouses.
"""
from typing import Dict, Optional, Protocol, Sequence, Type

from core.config import settings
from core.errors import ValidationError
from db.warehouse import WarehouseStock


class AllocationPolicy(Protocol):
    name: str

    def choose(self, candidates: Sequence[WarehouseStock], quantity: int) -> Optional[WarehouseStock]:
        ...


class MostAvailablePolicy:
    """Greedy: the warehouse with the most available stock (ties: lowest warehouse id)."""

    name = "most_available"

    def choose(self, candidates, quantity):
        fitting = [c for c in candidates if c.available >= quantity]
        if not fitting:
            return None
        return max(fitting, key=lambda c: (c.available, -c.warehouse_id))


class OldestWarehouseFirstPolicy:
    """FIFO by warehouse age: the earliest-created warehouse that can cover the line."""

    name = "oldest_warehouse"

    def choose(self, candidates, quantity):
        fitting = [c for c in candidates if c.available >= quantity]
        if not fitting:
            return None
        # warehouse ids are assigned in creation order
        return min(fitting, key=lambda c: c.warehouse_id)


POLICIES: Dict[str, Type] = {
    MostAvailablePolicy.name: MostAvailablePolicy,
    OldestWarehouseFirstPolicy.name: OldestWarehouseFirstPolicy,
}


def get_policy(name: str) -> AllocationPolicy:
    try:
        return POLICIES[(name or "").strip().lower()]()
    except KeyError:
        raise ValidationError(
            "UNKNOWN_ALLOCATION_POLICY",
            f"Unknown allocation policy {name!r}; expected one of {sorted(POLICIES)}",
        ) from None


def policy_from_settings() -> AllocationPolicy:
    """The policy named by ALLOCATION_POLICY.

    A bad name is a deployment problem, so it surfaces as RuntimeError
    (checked once at startup) rather than as a client-facing validation error.
    """
    try:
        return get_policy(settings.allocation_policy)
    except ValidationError as e:
        raise RuntimeError(f"ALLOCATION_POLICY: {e.detail}") from None
