import uuid

import pytest

from refurbops.core.exceptions import Unauthorized
from refurbops.core.permissions import (
    ACTION_CAPABILITIES, Actor, Capability, Role, ROLE_CAPABILITIES, require_capability,
)


def test_every_action_maps_to_a_known_capability():
    assert set(ACTION_CAPABILITIES.values()) <= Capability.all()


def test_admins_hold_every_capability():
    assert ROLE_CAPABILITIES[Role.ADMIN] == Capability.all()
    assert ROLE_CAPABILITIES[Role.SUPERADMIN] == Capability.all()


@pytest.mark.parametrize("role,action", [
    (Role.REPAIR_ENGINEER, "start_repair"),
    (Role.REPAIR_ENGINEER, "complete_paint"),
    (Role.PAINT_SHOP_TECHNICIAN, "complete_paint"),
    (Role.QC_ENGINEER, "submit_qc"),
    (Role.QC_ENGINEER, "send_for_rework"),
    (Role.WAREHOUSE_MANAGER, "issue_spares"),
    (Role.MIS_WAREHOUSE_EXECUTIVE, "dispatch"),
    (Role.INSPECTION_ENGINEER, "submit_inspection"),
])
def test_allowed(role, action):
    require_capability(Actor.for_role(uuid.uuid4(), role), action)


@pytest.mark.parametrize("role,action", [
    (Role.INSPECTION_ENGINEER, "start_repair"),
    (Role.PAINT_SHOP_TECHNICIAN, "send_to_paint"),
    (Role.REPAIR_ENGINEER, "submit_qc"),
    (Role.QC_ENGINEER, "dispatch"),
    (Role.MIS_WAREHOUSE_EXECUTIVE, "scrap"),
])
def test_denied(role, action):
    with pytest.raises(Unauthorized):
        require_capability(Actor.for_role(uuid.uuid4(), role), action)


def test_unknown_action_is_never_allowed():
    with pytest.raises(Unauthorized):
        require_capability(Actor.for_role(uuid.uuid4(), Role.SUPERADMIN), "format_disk")
