"""
Device / Repair Job State Machine

This module is the SINGLE SOURCE OF TRUTH for device and repair job status
transitions. The transition engine (workflow_service) validates every status
change against these tables before writing it.
"""
from typing import Dict, List

from refurbops.core.exceptions import InvalidTransition
from refurbops.models.device import DeviceStatus
from refurbops.models.repair_job import RepairJobStatus


# =============================================================================
# DEVICE TRANSITIONS
# =============================================================================

D = DeviceStatus

DEVICE_TRANSITIONS: Dict[str, List[str]] = {
    D.RECEIVED: [
        D.PENDING_INSPECTION,       # Queue for inspection
        D.SCRAPPED,
    ],
    D.PENDING_INSPECTION: [
        D.WAITING_FOR_SPARES,       # Inspection: spares requested
        D.READY_FOR_REPAIR,         # Inspection: repair needed
        D.IN_PAINT,                 # Inspection: cosmetic only
        D.AWAITING_QC,              # Inspection: nothing to fix
        D.SCRAPPED,
    ],
    D.WAITING_FOR_SPARES: [
        D.READY_FOR_REPAIR,         # Spares issued
        D.SCRAPPED,
    ],
    D.READY_FOR_REPAIR: [
        D.UNDER_REPAIR,             # Engineer picks up the job
        D.SCRAPPED,
    ],
    D.UNDER_REPAIR: [
        D.IN_PAINT,                 # Panels sent to paint shop
        D.AWAITING_QC,              # Repair complete
        D.SCRAPPED,
    ],
    D.IN_PAINT: [
        D.AWAITING_QC,              # Paint collected, repair complete
        D.READY_FOR_REPAIR,         # Paint collected, repair still pending
        D.SCRAPPED,
    ],
    D.AWAITING_QC: [
        D.QC_PASSED,
        D.QC_FAILED,
        D.SCRAPPED,
    ],
    D.QC_PASSED: [
        D.READY_FOR_STOCK,
        D.READY_FOR_DISPATCH,
        D.SCRAPPED,
    ],
    D.QC_FAILED: [
        D.READY_FOR_REPAIR,         # Rework
        D.SCRAPPED,
    ],
    D.READY_FOR_STOCK: [
        D.READY_FOR_DISPATCH,
        D.DISPATCHED,
        D.SCRAPPED,
    ],
    D.READY_FOR_DISPATCH: [
        D.DISPATCHED,
        D.SCRAPPED,
    ],
    D.DISPATCHED: [],               # Terminal state
    D.SCRAPPED: [],                 # Terminal state
}


# =============================================================================
# REPAIR JOB TRANSITIONS
# =============================================================================

J = RepairJobStatus

JOB_TRANSITIONS: Dict[str, List[str]] = {
    J.WAITING_FOR_SPARES: [
        J.READY_FOR_REPAIR,
        J.SCRAPPED,
    ],
    J.READY_FOR_REPAIR: [
        J.UNDER_REPAIR,
        J.SCRAPPED,
    ],
    J.UNDER_REPAIR: [
        J.IN_PAINT,
        J.COMPLETED,
        J.SCRAPPED,
    ],
    J.IN_PAINT: [
        J.COMPLETED,
        J.READY_FOR_REPAIR,         # Paint-first job: repair still pending
        J.SCRAPPED,
    ],
    J.COMPLETED: [
        J.READY_FOR_REPAIR,         # QC failed, rework
        J.CLOSED,                   # Device dispatched
        J.SCRAPPED,
    ],
    J.CLOSED: [],
    J.SCRAPPED: [],
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _key(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def _normalize(table: Dict) -> Dict[str, List[str]]:
    return {_key(src): [_key(dst) for dst in dsts] for src, dsts in table.items()}


DEVICE_GRAPH = _normalize(DEVICE_TRANSITIONS)
JOB_GRAPH = _normalize(JOB_TRANSITIONS)


def can_transition_device(current_status: str, new_status: str) -> bool:
    return _key(new_status) in DEVICE_GRAPH.get(_key(current_status), [])


def can_transition_job(current_status: str, new_status: str) -> bool:
    return _key(new_status) in JOB_GRAPH.get(_key(current_status), [])


def get_allowed_device_transitions(current_status: str) -> List[str]:
    return DEVICE_GRAPH.get(_key(current_status), [])


def is_terminal_device(status: str) -> bool:
    return not DEVICE_GRAPH.get(_key(status))


def is_terminal_job(status: str) -> bool:
    return not JOB_GRAPH.get(_key(status))


def _validate(kind: str, graph: Dict[str, List[str]], current_status, new_status) -> None:
    current, new = _key(current_status), _key(new_status)
    allowed = graph.get(current, [])
    if new in allowed:
        return

    if not allowed:
        raise InvalidTransition(
            f"{kind} in '{current}' status cannot be modified. This is a terminal state.",
            current_status=current,
            requested_status=new,
        )
    raise InvalidTransition(
        f"Cannot change {kind} from '{current}' to '{new}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        current_status=current,
        requested_status=new,
    )


def validate_device_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransition unless the device edge exists. Self-loops are not edges."""
    _validate("Device", DEVICE_GRAPH, current_status, new_status)


def validate_job_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransition unless the repair job edge exists."""
    _validate("Repair job", JOB_GRAPH, current_status, new_status)
