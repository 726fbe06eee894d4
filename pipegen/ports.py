"""Port allocation over a bounded window using a socket enumeration capability."""

from __future__ import annotations

import re
import shutil
import subprocess
from typing import Callable, Collection, FrozenSet, Iterable, Optional, Protocol, Sequence, Set

from .errors import CapabilityMissingError, PortExhaustionError, ValidationError
from .logging import get_logger
from .models import PortAllocation

MIN_PORT = 1
MAX_PORT = 65535
SEARCH_WINDOW = 100

_LOCAL_ADDRESS = re.compile(r"^(?:\S*):(\d+)$")

logger = get_logger("ports")


class SocketEnumerator(Protocol):
    """Capability that lists ports with bound listening sockets."""

    def list_bound_ports(self) -> Set[int]:
        ...


class StaticSocketEnumerator:
    """Reports a fixed set of occupied ports."""

    def __init__(self, occupied: Iterable[int] = ()) -> None:
        self._occupied: FrozenSet[int] = frozenset(occupied)

    def list_bound_ports(self) -> Set[int]:
        return set(self._occupied)


def _default_runner(args: Sequence[str]) -> str:
    result = subprocess.run(
        list(args),
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


class CommandSocketEnumerator:
    """Lists listening TCP/UDP ports via ``ss -tuln`` or ``netstat -tuln``."""

    def __init__(
        self,
        command: Sequence[str],
        runner: Callable[[Sequence[str]], str] | None = None,
    ) -> None:
        self.command = tuple(command)
        self._runner = runner or _default_runner

    def list_bound_ports(self) -> Set[int]:
        try:
            output = self._runner(self.command)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise CapabilityMissingError(
                f"Socket enumeration via '{' '.join(self.command)}' failed: {exc}"
            ) from exc
        return parse_listening_ports(output)


def parse_listening_ports(output: str) -> Set[int]:
    """Extract local ports from ``ss``/``netstat`` listings.

    The first ``host:port`` column on each line is the local address; peer
    columns use ``*`` for the port and never match.
    """
    ports: Set[int] = set()
    for line in output.splitlines():
        for token in line.split():
            match = _LOCAL_ADDRESS.match(token)
            if match:
                ports.add(int(match.group(1)))
                break
    return ports


def resolve_socket_enumerator(
    which: Callable[[str], Optional[str]] = shutil.which,
    runner: Callable[[Sequence[str]], str] | None = None,
) -> CommandSocketEnumerator:
    """Prefer ``ss``, fall back to ``netstat``; fail fast when neither exists."""
    if which("ss"):
        return CommandSocketEnumerator(("ss", "-tuln"), runner)
    if which("netstat"):
        logger.debug("'ss' not found; using netstat for port checks")
        return CommandSocketEnumerator(("netstat", "-tuln"), runner)
    raise CapabilityMissingError(
        "Neither 'ss' nor 'netstat' is available. Install iproute2 or net-tools."
    )


def validate_port(value: object) -> int:
    """Return ``value`` as a port number in [1, 65535] or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"Port must be a number between 1 and 65535. Got: {value}")
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(f"Port must be a number between 1 and 65535. Got: {value}")
        value = int(text)
    if not isinstance(value, int) or not MIN_PORT <= value <= MAX_PORT:
        raise ValidationError(f"Port must be a number between 1 and 65535. Got: {value}")
    return value


def window_end(requested: int) -> int:
    return min(requested + SEARCH_WINDOW, MAX_PORT)


def allocate(requested: int, occupied: Collection[int]) -> PortAllocation:
    """Return the smallest free port in ``[requested, requested + 100]``."""
    end = window_end(requested)
    for port in range(requested, end + 1):
        if port not in occupied:
            return PortAllocation(requested_port=requested, resolved_port=port, window_end=end)
    raise PortExhaustionError(requested, end)


class PortAllocator:
    """Resolves a free port by querying the injected enumerator once."""

    def __init__(self, enumerator: SocketEnumerator | None) -> None:
        if enumerator is None:
            raise CapabilityMissingError("No socket enumeration capability configured")
        self.enumerator = enumerator

    def allocate(self, requested: int) -> PortAllocation:
        requested = validate_port(requested)
        occupied = self.enumerator.list_bound_ports()
        allocation = allocate(requested, occupied)
        if allocation.moved:
            logger.warning(
                "Port %d is busy; using free port %d", requested, allocation.resolved_port
            )
        else:
            logger.info("Port %d is free", requested)
        return allocation
