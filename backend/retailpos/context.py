# Overview: Explicit actor context passed into every engine operation.

"""
Actor context and the closed (Action, Resource) permission vocabulary.

The authorization collaborator resolves who is calling and what they may do
before the engine is invoked. The engine receives an ActorContext and only
uses it for tenant scoping and attribution (performed_by / cashier / closed_by);
it never re-derives permissions. ActorContext.can() is consulted by the HTTP
layer (decorators.require_permission) and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ADJUST = "adjust"
    TRANSFER = "transfer"
    RECEIVE = "receive"
    REFUND = "refund"
    OPEN = "open"
    CLOSE = "close"


class Resource(str, Enum):
    INVENTORY = "Inventory"
    SALE = "Sale"
    PURCHASE_ORDER = "PurchaseOrder"
    SUPPLIER = "Supplier"
    REGISTER = "Register"


@dataclass(frozen=True)
class Permission:
    action: Action
    resource: Resource

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """Parse a legacy "action:Subject" string, e.g. "adjust:Inventory"."""
        try:
            action, resource = value.strip().split(":", 1)
            return cls(Action(action.strip()), Resource(resource.strip()))
        except ValueError:
            raise ValueError(f"Unknown permission: {value!r}")

    def __str__(self) -> str:
        return f"{self.action.value}:{self.resource.value}"


@dataclass(frozen=True)
class ActorContext:
    tenant_id: int
    user_id: int
    permissions: frozenset[Permission] = field(default_factory=frozenset)

    def can(self, action: Action, resource: Resource) -> bool:
        return Permission(action, resource) in self.permissions

    @classmethod
    def with_all_permissions(cls, tenant_id: int, user_id: int) -> "ActorContext":
        """System actor (CLI, background jobs) holding every permission."""
        perms = frozenset(Permission(a, r) for a in Action for r in Resource)
        return cls(tenant_id=tenant_id, user_id=user_id, permissions=perms)
