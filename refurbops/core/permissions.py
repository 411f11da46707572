"""
Capability-based access control for workflow actions.

Each workflow action maps to exactly one capability; each role maps to a set
of capabilities. The transition engine calls `require_capability` once at its
boundary, so no per-page or per-endpoint role checks are needed.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional
import uuid

from refurbops.core.exceptions import Unauthorized


class Role(str, Enum):
    """User roles."""
    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    WAREHOUSE_MANAGER = "WAREHOUSE_MANAGER"
    MIS_WAREHOUSE_EXECUTIVE = "MIS_WAREHOUSE_EXECUTIVE"
    INSPECTION_ENGINEER = "INSPECTION_ENGINEER"
    REPAIR_ENGINEER = "REPAIR_ENGINEER"
    PAINT_SHOP_TECHNICIAN = "PAINT_SHOP_TECHNICIAN"
    QC_ENGINEER = "QC_ENGINEER"


class Capability:
    """Capability codes - use these instead of strings."""
    INWARD_CREATE = "inward:create"
    INSPECTION_PERFORM = "inspection:perform"
    SPARES_ISSUE = "spares:issue"
    SPARES_MANAGE = "spares:manage"
    REPAIR_PERFORM = "repair:perform"
    PAINT_PERFORM = "paint:perform"
    QC_PERFORM = "qc:perform"
    REWORK_ASSIGN = "rework:assign"
    OUTWARD_PERFORM = "outward:perform"
    DEVICE_SCRAP = "device:scrap"

    @classmethod
    def all(cls) -> FrozenSet[str]:
        return frozenset(
            value for name, value in vars(cls).items()
            if name.isupper() and isinstance(value, str)
        )


ROLE_CAPABILITIES: Dict[Role, FrozenSet[str]] = {
    Role.SUPERADMIN: Capability.all(),
    Role.ADMIN: Capability.all(),
    Role.WAREHOUSE_MANAGER: frozenset({
        Capability.INWARD_CREATE,
        Capability.SPARES_ISSUE,
        Capability.SPARES_MANAGE,
        Capability.REWORK_ASSIGN,
        Capability.OUTWARD_PERFORM,
        Capability.DEVICE_SCRAP,
    }),
    Role.MIS_WAREHOUSE_EXECUTIVE: frozenset({
        Capability.INWARD_CREATE,
        Capability.SPARES_ISSUE,
        Capability.OUTWARD_PERFORM,
    }),
    Role.INSPECTION_ENGINEER: frozenset({Capability.INSPECTION_PERFORM}),
    Role.REPAIR_ENGINEER: frozenset({
        Capability.REPAIR_PERFORM,
        Capability.PAINT_PERFORM,  # Collects finished panels from the paint shop
    }),
    Role.PAINT_SHOP_TECHNICIAN: frozenset({Capability.PAINT_PERFORM}),
    Role.QC_ENGINEER: frozenset({Capability.QC_PERFORM, Capability.REWORK_ASSIGN}),
}

# Explicit allow-list: workflow action -> required capability
ACTION_CAPABILITIES: Dict[str, str] = {
    "create_inward_batch": Capability.INWARD_CREATE,
    "receive_device": Capability.INWARD_CREATE,
    "queue_for_inspection": Capability.INSPECTION_PERFORM,
    "submit_inspection": Capability.INSPECTION_PERFORM,
    "issue_spares": Capability.SPARES_ISSUE,
    "receive_stock": Capability.SPARES_MANAGE,
    "adjust_stock": Capability.SPARES_MANAGE,
    "create_spare_part": Capability.SPARES_MANAGE,
    "start_repair": Capability.REPAIR_PERFORM,
    "send_to_paint": Capability.REPAIR_PERFORM,
    "complete_repair": Capability.REPAIR_PERFORM,
    "complete_paint": Capability.PAINT_PERFORM,
    "submit_qc": Capability.QC_PERFORM,
    "send_for_rework": Capability.REWORK_ASSIGN,
    "move_to_stock": Capability.OUTWARD_PERFORM,
    "mark_ready_for_dispatch": Capability.OUTWARD_PERFORM,
    "dispatch": Capability.OUTWARD_PERFORM,
    "scrap": Capability.DEVICE_SCRAP,
}


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller: id plus resolved capability set."""
    id: uuid.UUID
    role: Optional[Role] = None
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    name: str = ""

    @classmethod
    def for_role(cls, actor_id: uuid.UUID, role: Role, name: str = "") -> "Actor":
        return cls(
            id=actor_id,
            role=role,
            capabilities=capabilities_for_roles([role]),
            name=name,
        )

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


def capabilities_for_roles(roles: Iterable[Role]) -> FrozenSet[str]:
    caps: set = set()
    for role in roles:
        caps |= ROLE_CAPABILITIES.get(Role(role), frozenset())
    return frozenset(caps)


def required_capability(action: str) -> str:
    try:
        return ACTION_CAPABILITIES[action]
    except KeyError:
        raise Unauthorized(f"Action '{action}' is not permitted for any role")


def require_capability(actor: Actor, action: str) -> None:
    """Raise Unauthorized unless the actor may perform the action."""
    capability = required_capability(action)
    if not actor.can(capability):
        role = actor.role.value if actor.role else "no role"
        raise Unauthorized(
            f"Actor {actor.id} ({role}) lacks capability '{capability}' required for '{action}'"
        )
