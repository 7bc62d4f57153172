"""Exception hierarchy shared by the discovery engine and the CLI."""

from __future__ import annotations


class HelptreeError(RuntimeError):
    pass


class BinaryNotFoundError(HelptreeError):
    """The target executable could not be resolved or launched."""

    def __init__(self, command: str) -> None:
        super().__init__(f"command not found: {command}")
        self.command = command


class ProbeError(HelptreeError):
    """A single help probe failed; callers degrade it to a stub node."""


class ProbeTimeoutError(ProbeError):
    def __init__(self, argv: list[str], timeout_s: float) -> None:
        super().__init__(f"timed out after {timeout_s:g}s: {' '.join(argv)}")
        self.argv = argv
        self.timeout_s = timeout_s


class ProbeCancelledError(ProbeError):
    pass


class DiscoveryError(HelptreeError):
    """Every configured strategy failed to produce a tree."""
