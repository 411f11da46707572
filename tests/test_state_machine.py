import pytest

from refurbops.core.exceptions import InvalidTransition
from refurbops.models import DeviceStatus, RepairJobStatus
from refurbops.services.state_machine import (
    DEVICE_GRAPH, JOB_GRAPH,
    can_transition_device, can_transition_job,
    get_allowed_device_transitions, is_terminal_device, is_terminal_job,
    validate_device_transition, validate_job_transition,
)


def test_every_device_status_has_an_entry():
    assert set(DEVICE_GRAPH) == {s.value for s in DeviceStatus}


def test_every_job_status_has_an_entry():
    assert set(JOB_GRAPH) == {s.value for s in RepairJobStatus}


def test_edges_only_point_at_known_statuses():
    for targets in DEVICE_GRAPH.values():
        assert set(targets) <= set(DEVICE_GRAPH)
    for targets in JOB_GRAPH.values():
        assert set(targets) <= set(JOB_GRAPH)


@pytest.mark.parametrize("status", [DeviceStatus.DISPATCHED, DeviceStatus.SCRAPPED])
def test_terminal_device_statuses(status):
    assert is_terminal_device(status)
    assert get_allowed_device_transitions(status) == []


@pytest.mark.parametrize("status", [RepairJobStatus.CLOSED, RepairJobStatus.SCRAPPED])
def test_terminal_job_statuses(status):
    assert is_terminal_job(status)


def test_every_non_terminal_device_status_can_be_scrapped():
    for status, targets in DEVICE_GRAPH.items():
        if targets:
            assert DeviceStatus.SCRAPPED.value in targets, status


def test_repair_path_edges():
    assert can_transition_job(RepairJobStatus.READY_FOR_REPAIR, RepairJobStatus.UNDER_REPAIR)
    assert can_transition_job("UNDER_REPAIR", "COMPLETED")
    assert not can_transition_job("READY_FOR_REPAIR", "COMPLETED")
    assert can_transition_device(DeviceStatus.QC_FAILED, DeviceStatus.READY_FOR_REPAIR)
    assert not can_transition_device(DeviceStatus.RECEIVED, DeviceStatus.UNDER_REPAIR)


def test_self_loops_are_not_edges():
    with pytest.raises(InvalidTransition):
        validate_device_transition(DeviceStatus.UNDER_REPAIR, DeviceStatus.UNDER_REPAIR)


def test_invalid_edge_names_allowed_targets():
    with pytest.raises(InvalidTransition) as exc_info:
        validate_job_transition(RepairJobStatus.READY_FOR_REPAIR, RepairJobStatus.COMPLETED)

    err = exc_info.value
    assert err.current_status == "READY_FOR_REPAIR"
    assert err.requested_status == "COMPLETED"
    assert "UNDER_REPAIR" in err.message
    assert err.status_code == 409


def test_terminal_state_message():
    with pytest.raises(InvalidTransition, match="terminal state"):
        validate_device_transition(DeviceStatus.DISPATCHED, DeviceStatus.READY_FOR_STOCK)


EXPECTED_DEVICE_EDGES = {
    "RECEIVED": {"PENDING_INSPECTION", "SCRAPPED"},
    "PENDING_INSPECTION": {"WAITING_FOR_SPARES", "READY_FOR_REPAIR", "IN_PAINT", "AWAITING_QC", "SCRAPPED"},
    "WAITING_FOR_SPARES": {"READY_FOR_REPAIR", "SCRAPPED"},
    "READY_FOR_REPAIR": {"UNDER_REPAIR", "SCRAPPED"},
    "UNDER_REPAIR": {"IN_PAINT", "AWAITING_QC", "SCRAPPED"},
    "IN_PAINT": {"AWAITING_QC", "READY_FOR_REPAIR", "SCRAPPED"},
    "AWAITING_QC": {"QC_PASSED", "QC_FAILED", "SCRAPPED"},
    "QC_PASSED": {"READY_FOR_STOCK", "READY_FOR_DISPATCH", "SCRAPPED"},
    "QC_FAILED": {"READY_FOR_REPAIR", "SCRAPPED"},
    "READY_FOR_STOCK": {"READY_FOR_DISPATCH", "DISPATCHED", "SCRAPPED"},
    "READY_FOR_DISPATCH": {"DISPATCHED", "SCRAPPED"},
    "DISPATCHED": set(),
    "SCRAPPED": set(),
}


@pytest.mark.parametrize("status", sorted(EXPECTED_DEVICE_EDGES))
def test_device_graph_matches_workflow(status):
    assert set(DEVICE_GRAPH[status]) == EXPECTED_DEVICE_EDGES[status]


def test_ready_for_dispatch_does_not_return_to_stock():
    with pytest.raises(InvalidTransition):
        validate_device_transition(DeviceStatus.READY_FOR_DISPATCH, DeviceStatus.READY_FOR_STOCK)
