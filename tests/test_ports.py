"""Tests for port validation and allocation."""

from __future__ import annotations

import subprocess

import pytest

from pipegen.errors import CapabilityMissingError, PortExhaustionError, ValidationError
from pipegen.ports import (
    CommandSocketEnumerator,
    PortAllocator,
    StaticSocketEnumerator,
    allocate,
    parse_listening_ports,
    resolve_socket_enumerator,
    validate_port,
)

SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
tcp   LISTEN 0      4096         0.0.0.0:3000       0.0.0.0:*
tcp   LISTEN 0      4096       127.0.0.1:3001       0.0.0.0:*
tcp   LISTEN 0      511             [::]:3002          [::]:*
udp   UNCONN 0      0          127.0.0.53%lo:53     0.0.0.0:*
"""

NETSTAT_OUTPUT = """\
Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State
tcp        0      0 0.0.0.0:8080            0.0.0.0:*               LISTEN
tcp6       0      0 :::5432                 :::*                    LISTEN
"""


def test_occupied_block_moves_to_next_free_port() -> None:
    allocator = PortAllocator(StaticSocketEnumerator({3000, 3001, 3002}))

    allocation = allocator.allocate(3000)

    assert allocation.resolved_port == 3003
    assert allocation.requested_port == 3000
    assert allocation.moved


def test_free_requested_port_is_kept() -> None:
    allocation = allocate(8080, occupied=set())

    assert allocation.resolved_port == 8080
    assert not allocation.moved
    assert allocation.window_end == 8180


def test_smallest_free_port_is_chosen() -> None:
    allocation = allocate(4000, occupied={4000, 4002})

    assert allocation.resolved_port == 4001


def test_window_is_inclusive_of_last_port() -> None:
    occupied = set(range(5000, 5100))

    assert allocate(5000, occupied).resolved_port == 5100


def test_exhausted_window_raises() -> None:
    occupied = set(range(5000, 5101))

    with pytest.raises(PortExhaustionError, match="5000-5100") as excinfo:
        allocate(5000, occupied)

    assert excinfo.value.exit_code == 6


def test_window_is_clamped_at_max_port() -> None:
    with pytest.raises(PortExhaustionError) as excinfo:
        allocate(65500, occupied=set(range(65500, 65536)))

    assert excinfo.value.window_end == 65535


@pytest.mark.parametrize("value", [0, 65536, -1, "abc", "", "30.5", "\u00b3", True, None])
def test_validate_port_rejects_invalid_values(value: object) -> None:
    with pytest.raises(ValidationError):
        validate_port(value)


def test_validate_port_accepts_numeric_strings() -> None:
    assert validate_port(" 3000 ") == 3000
    assert validate_port(65535) == 65535


def test_allocator_requires_enumerator() -> None:
    with pytest.raises(CapabilityMissingError):
        PortAllocator(None)


def test_parse_ss_output() -> None:
    assert parse_listening_ports(SS_OUTPUT) == {3000, 3001, 3002, 53}


def test_parse_netstat_output() -> None:
    assert parse_listening_ports(NETSTAT_OUTPUT) == {8080, 5432}


def test_resolver_prefers_ss_then_netstat() -> None:
    available = {"netstat"}
    enumerator = resolve_socket_enumerator(
        which=lambda name: f"/usr/bin/{name}" if name in available else None
    )
    assert enumerator.command == ("netstat", "-tuln")

    available.add("ss")
    enumerator = resolve_socket_enumerator(
        which=lambda name: f"/usr/bin/{name}" if name in available else None
    )
    assert enumerator.command == ("ss", "-tuln")


def test_resolver_fails_fast_without_tools() -> None:
    with pytest.raises(CapabilityMissingError) as excinfo:
        resolve_socket_enumerator(which=lambda _name: None)

    assert excinfo.value.exit_code == 5


def test_command_enumerator_runs_tool() -> None:
    calls = []

    def runner(args):
        calls.append(tuple(args))
        return SS_OUTPUT

    enumerator = CommandSocketEnumerator(("ss", "-tuln"), runner=runner)

    assert PortAllocator(enumerator).allocate(3000).resolved_port == 3003
    assert calls == [("ss", "-tuln")]


def test_command_enumerator_failure_is_capability_missing() -> None:
    def runner(args):
        raise subprocess.CalledProcessError(1, list(args))

    enumerator = CommandSocketEnumerator(("ss", "-tuln"), runner=runner)

    with pytest.raises(CapabilityMissingError):
        enumerator.list_bound_ports()
