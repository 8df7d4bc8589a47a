"""Catalogue of NVIDIA driver XID events known to the simulator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from fleet_simulator.domain.models import XIDSeverity


@dataclass(frozen=True, slots=True)
class XIDDefinition:
    code: int
    name: str
    severity: XIDSeverity
    category: str
    description: str


_CATALOGUE: Final[tuple[XIDDefinition, ...]] = (
    XIDDefinition(
        13,
        "Graphics Engine Exception",
        XIDSeverity.WARNING,
        "Application",
        "Graphics engine exception occurred during shader execution.",
    ),
    XIDDefinition(
        23,
        "GPU Shared Memory Exception",
        XIDSeverity.WARNING,
        "Application",
        "GPU detected a shared memory access violation or exception.",
    ),
    XIDDefinition(
        24,
        "GPU Exception During Kernel Launch",
        XIDSeverity.WARNING,
        "Application",
        "An exception occurred while launching a GPU kernel.",
    ),
    XIDDefinition(
        27,
        "GPU Memory Interface Error",
        XIDSeverity.CRITICAL,
        "Memory",
        "Error at the GPU memory interface level.",
    ),
    XIDDefinition(
        31,
        "GPU Memory Page Fault",
        XIDSeverity.WARNING,
        "Application",
        "GPU memory page fault during application execution.",
    ),
    XIDDefinition(
        32,
        "Invalid or Corrupted Push Buffer",
        XIDSeverity.WARNING,
        "Driver",
        "The GPU detected an invalid or corrupted command buffer.",
    ),
    XIDDefinition(
        38,
        "Driver Firmware Mismatch",
        XIDSeverity.CRITICAL,
        "Driver",
        "The loaded driver firmware does not match the expected version.",
    ),
    XIDDefinition(
        43,
        "GPU Stopped Responding",
        XIDSeverity.CRITICAL,
        "Hardware",
        "GPU has stopped responding and cannot be recovered.",
    ),
    XIDDefinition(
        45,
        "Preemptive GPU Cleanup",
        XIDSeverity.INFORMATIONAL,
        "Driver",
        "GPU resources were cleaned up due to application termination.",
    ),
    XIDDefinition(
        48,
        "Double-Bit ECC Error",
        XIDSeverity.CRITICAL,
        "Memory",
        "Uncorrectable double-bit ECC error in GPU memory.",
    ),
    XIDDefinition(
        54,
        "Hardware Watchdog Timeout",
        XIDSeverity.CRITICAL,
        "Hardware",
        "GPU hardware watchdog detected a timeout.",
    ),
    XIDDefinition(
        62,
        "Spurious Host Interrupt",
        XIDSeverity.INFORMATIONAL,
        "Driver",
        "GPU received an unexpected interrupt from the host.",
    ),
    XIDDefinition(
        63,
        "Row Remapping Failure",
        XIDSeverity.CRITICAL,
        "Memory",
        "GPU failed to remap a memory row with errors.",
    ),
    XIDDefinition(
        64,
        "Row Remapping Threshold Exceeded",
        XIDSeverity.CRITICAL,
        "Memory",
        "Memory row remapping has reached its threshold.",
    ),
    XIDDefinition(
        72,
        "NVLink Flow Control Error",
        XIDSeverity.WARNING,
        "NVLink",
        "NVLink flow control credits exhausted or flow control protocol error.",
    ),
    XIDDefinition(
        74,
        "NVLink Error",
        XIDSeverity.CRITICAL,
        "NVLink",
        "Error detected on NVLink interconnect.",
    ),
    XIDDefinition(
        76,
        "NVLink Training Error",
        XIDSeverity.CRITICAL,
        "NVLink",
        "NVLink failed to complete link training.",
    ),
    XIDDefinition(
        79,
        "GPU Fallen Off Bus",
        XIDSeverity.CRITICAL,
        "Hardware",
        "GPU has become unresponsive and disconnected from PCIe bus.",
    ),
    XIDDefinition(
        92,
        "High Single-Bit ECC Rate",
        XIDSeverity.WARNING,
        "Memory",
        "Elevated rate of correctable single-bit ECC errors.",
    ),
    XIDDefinition(
        94,
        "Contained ECC Error",
        XIDSeverity.WARNING,
        "Memory",
        "ECC error that was successfully contained and did not affect data.",
    ),
    XIDDefinition(
        95,
        "Uncontained ECC Error",
        XIDSeverity.CRITICAL,
        "Memory",
        "ECC error that could not be contained; data may be corrupted.",
    ),
    XIDDefinition(
        119,
        "GSP Error",
        XIDSeverity.CRITICAL,
        "Driver",
        "GPU System Processor (GSP) error detected.",
    ),
)

XID_CATALOGUE: Final[dict[int, XIDDefinition]] = {item.code: item for item in _CATALOGUE}


def lookup_xid(code: int) -> XIDDefinition | None:
    return XID_CATALOGUE.get(code)


def xids_by_severity(severity: XIDSeverity | str) -> tuple[XIDDefinition, ...]:
    """Return catalogue entries with ``severity``, ordered by code."""

    wanted = XIDSeverity(severity)
    return tuple(item for item in _CATALOGUE if item.severity is wanted)


def describe_xid(code: int) -> tuple[str, XIDSeverity]:
    """Return a display description and severity, falling back for unknown codes."""

    definition = lookup_xid(code)
    if definition is None:
        return f"XID {code} error", XIDSeverity.WARNING
    return definition.name, definition.severity


__all__ = ["XIDDefinition", "XID_CATALOGUE", "describe_xid", "lookup_xid", "xids_by_severity"]
