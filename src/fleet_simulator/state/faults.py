"""Fault injection into a scenario context or the global store."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Final, Protocol

from fleet_simulator.domain.models import GPU, HealthStatus, LinkStatus, XIDEvent, utc_now
from fleet_simulator.domain.xid import describe_xid
from fleet_simulator.state.mutations import StateMutator

DEFAULT_XID_CODE: Final[int] = 79
DEFAULT_THERMAL_TARGET: Final[float] = 85.0
MEMORY_FULL_MIB: Final[int] = 79000
POWER_FAULT_RATIO: Final[float] = 0.95

FAULT_TYPES: Final[tuple[str, ...]] = (
    "xid-error",
    "thermal",
    "memory-full",
    "ecc-error",
    "nvlink-failure",
    "gpu-hang",
    "power",
)

logger = logging.getLogger(__name__)


class FaultTarget(StateMutator, Protocol):
    def get_gpu(self, node_id: str, gpu_id: int | str) -> GPU | None: ...


@dataclass(frozen=True, slots=True)
class FaultSpec:
    node_id: str
    gpu_id: int
    type: str
    severity: str = "warning"
    parameters: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> FaultSpec:
        """Parse ``node:gpu:type[:key=value,...]``, e.g. ``dgx-00:0:thermal:targetTemp=95``."""

        parts = text.split(":", 3)
        if len(parts) < 3:
            raise ValueError(f"fault {text!r}: expected node:gpu:type[:key=value,...]")
        node_id, gpu_text, fault_type = (part.strip() for part in parts[:3])
        if not gpu_text.isdigit():
            raise ValueError(f"fault {text!r}: gpu must be a non-negative integer")
        parameters: dict[str, object] = {}
        if len(parts) == 4 and parts[3].strip():
            for item in parts[3].split(","):
                key, sep, value = item.partition("=")
                if not sep or not key.strip():
                    raise ValueError(f"fault {text!r}: malformed parameter {item!r}")
                parameters[key.strip()] = _parse_number(value.strip())
        return cls(node_id=node_id, gpu_id=int(gpu_text), type=fault_type, parameters=parameters)


def apply_faults_to_context(faults: Iterable[FaultSpec], target: FaultTarget) -> int:
    """Apply each fault as one mutation; return how many faults took effect."""

    applied = 0
    for fault in faults:
        if _apply_fault(fault, target):
            applied += 1
    return applied


def _apply_fault(fault: FaultSpec, target: FaultTarget) -> bool:
    gpu = target.get_gpu(fault.node_id, fault.gpu_id)
    if gpu is None:
        logger.warning(
            "fault target not found",
            extra={"node_id": fault.node_id, "gpu_id": fault.gpu_id, "fault": fault.type},
        )
        return False

    node_id, gpu_id, params = fault.node_id, fault.gpu_id, fault.parameters
    command = f"fault:{fault.type}"
    if fault.type == "xid-error":
        code = _int_param(params, "xid", DEFAULT_XID_CODE)
        description, severity = describe_xid(code)
        event = XIDEvent(code=code, timestamp=utc_now(), description=description, severity=severity)
        return target.add_xid_error(node_id, gpu_id, event, command)
    if fault.type == "thermal":
        temperature = _float_param(params, "targetTemp", DEFAULT_THERMAL_TARGET)
        return target.update_gpu(node_id, gpu_id, {"temperature": temperature}, command)
    if fault.type == "memory-full":
        used = min(MEMORY_FULL_MIB, gpu.memory_total)
        return target.update_gpu(node_id, gpu_id, {"memory_used": used}, command)
    if fault.type == "ecc-error":
        return target.update_ecc(
            node_id,
            gpu_id,
            single_bit=_int_param(params, "singleBit", 0),
            double_bit=_int_param(params, "doubleBit", 0),
            command=command,
        )
    if fault.type == "nvlink-failure":
        links = copy.deepcopy(gpu.nvlinks)
        if links:
            links[0].status = LinkStatus.DOWN
        return target.update_gpu(
            node_id,
            gpu_id,
            {"nvlinks": links, "health_status": HealthStatus.WARNING},
            command,
        )
    if fault.type == "gpu-hang":
        return target.update_gpu(
            node_id,
            gpu_id,
            {"utilization": 0.0, "health_status": HealthStatus.CRITICAL},
            command,
        )
    if fault.type == "power":
        return target.update_gpu(
            node_id,
            gpu_id,
            {
                "power_draw": round(gpu.power_limit * POWER_FAULT_RATIO, 1),
                "health_status": HealthStatus.WARNING,
            },
            command,
        )

    logger.warning("unknown fault type skipped", extra={"fault": fault.type})
    return False


def _int_param(params: Mapping[str, object], key: str, default: int) -> int:
    value = params.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"fault parameter {key}: expected integer")
    return int(value)


def _float_param(params: Mapping[str, object], key: str, default: float) -> float:
    value = params.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"fault parameter {key}: expected number")
    return float(value)


def _parse_number(text: str) -> object:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


__all__ = [
    "DEFAULT_THERMAL_TARGET",
    "DEFAULT_XID_CODE",
    "FAULT_TYPES",
    "FaultSpec",
    "FaultTarget",
    "MEMORY_FULL_MIB",
    "apply_faults_to_context",
]
