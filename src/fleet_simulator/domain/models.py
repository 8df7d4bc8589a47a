"""Dataclass cluster models with strict parsing and canonical serialization.

The cluster graph is deliberately mutable: the global store and every scenario
context own a private copy and apply typed mutations to it in place.
"""

from __future__ import annotations

import copy
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Any, NoReturn, TypeVar, cast

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)


class HealthStatus(StrEnum):
    OK = "OK"
    WARNING = "Warning"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


class SlurmNodeState(StrEnum):
    IDLE = "idle"
    ALLOC = "alloc"
    MIXED = "mixed"
    DRAIN = "drain"
    DOWN = "down"
    RESUME = "resume"


class XIDSeverity(StrEnum):
    INFORMATIONAL = "Informational"
    WARNING = "Warning"
    CRITICAL = "Critical"


class LinkStatus(StrEnum):
    ACTIVE = "Active"
    DOWN = "Down"


class PowerState(StrEnum):
    ON = "On"
    OFF = "Off"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


@dataclass(slots=True)
class EccCounters(CanonicalModel):
    single_bit: int = 0
    double_bit: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EccCounters:
        parsed = _expect_object(data, "EccCounters", optional={"single_bit", "double_bit"})
        return cls(
            single_bit=_as_int(parsed.get("single_bit", 0), "EccCounters.single_bit", minimum=0),
            double_bit=_as_int(parsed.get("double_bit", 0), "EccCounters.double_bit", minimum=0),
        )


@dataclass(slots=True)
class EccErrors(CanonicalModel):
    """Volatile counters plus lifetime aggregates."""

    single_bit: int = 0
    double_bit: int = 0
    aggregated: EccCounters = field(default_factory=EccCounters)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EccErrors:
        parsed = _expect_object(
            data, "EccErrors", optional={"single_bit", "double_bit", "aggregated"}
        )
        aggregated_raw = parsed.get("aggregated")
        return cls(
            single_bit=_as_int(parsed.get("single_bit", 0), "EccErrors.single_bit", minimum=0),
            double_bit=_as_int(parsed.get("double_bit", 0), "EccErrors.double_bit", minimum=0),
            aggregated=(
                EccCounters.from_dict(_as_mapping(aggregated_raw, "EccErrors.aggregated"))
                if aggregated_raw is not None
                else EccCounters()
            ),
        )


@dataclass(slots=True)
class NVLinkConnection(CanonicalModel):
    link_id: int
    status: LinkStatus = LinkStatus.ACTIVE
    speed: float = 25.0
    tx_errors: int = 0
    rx_errors: int = 0
    replay_errors: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NVLinkConnection:
        parsed = _expect_object(
            data,
            "NVLinkConnection",
            required={"link_id"},
            optional={"status", "speed", "tx_errors", "rx_errors", "replay_errors"},
        )
        return cls(
            link_id=_as_int(parsed["link_id"], "NVLinkConnection.link_id", minimum=0),
            status=_as_enum(
                LinkStatus, parsed.get("status", LinkStatus.ACTIVE), "NVLinkConnection.status"
            ),
            speed=_as_float(parsed.get("speed", 25.0), "NVLinkConnection.speed", minimum=0.0),
            tx_errors=_as_int(parsed.get("tx_errors", 0), "NVLinkConnection.tx_errors", minimum=0),
            rx_errors=_as_int(parsed.get("rx_errors", 0), "NVLinkConnection.rx_errors", minimum=0),
            replay_errors=_as_int(
                parsed.get("replay_errors", 0), "NVLinkConnection.replay_errors", minimum=0
            ),
        )


@dataclass(slots=True)
class XIDEvent(CanonicalModel):
    code: int
    timestamp: datetime
    description: str
    severity: XIDSeverity = XIDSeverity.WARNING

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> XIDEvent:
        parsed = _expect_object(
            data,
            "XIDEvent",
            required={"code", "timestamp", "description"},
            optional={"severity"},
        )
        return cls(
            code=_as_int(parsed["code"], "XIDEvent.code", minimum=0),
            timestamp=_as_datetime(parsed["timestamp"], "XIDEvent.timestamp"),
            description=_as_str(parsed["description"], "XIDEvent.description", min_len=0),
            severity=_as_enum(
                XIDSeverity, parsed.get("severity", XIDSeverity.WARNING), "XIDEvent.severity"
            ),
        )


@dataclass(slots=True)
class MIGInstance(CanonicalModel):
    instance_id: int
    profile: str
    memory_mib: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> MIGInstance:
        parsed = _expect_object(
            data, "MIGInstance", required={"instance_id", "profile"}, optional={"memory_mib"}
        )
        return cls(
            instance_id=_as_int(parsed["instance_id"], "MIGInstance.instance_id", minimum=0),
            profile=_as_str(parsed["profile"], "MIGInstance.profile"),
            memory_mib=_as_int(parsed.get("memory_mib", 0), "MIGInstance.memory_mib", minimum=0),
        )


@dataclass(slots=True)
class GPU(CanonicalModel):
    id: int
    uuid: str
    name: str
    type: str
    pci_address: str
    temperature: float
    power_draw: float
    power_limit: float
    memory_total: int
    memory_used: int
    utilization: float
    clocks_sm: int
    clocks_mem: int
    ecc_enabled: bool = True
    ecc_errors: EccErrors = field(default_factory=EccErrors)
    mig_mode: bool = False
    mig_instances: list[MIGInstance] = field(default_factory=list)
    nvlinks: list[NVLinkConnection] = field(default_factory=list)
    health_status: HealthStatus = HealthStatus.OK
    xid_errors: list[XIDEvent] = field(default_factory=list)
    persistence_mode: bool = True
    allocated_job_id: int | None = None

    def apply_updates(self, updates: Mapping[str, object]) -> None:
        """Assign a partial update of GPU fields in place."""

        allowed = _field_names(self)
        unknown = sorted(key for key in updates if key not in allowed or key == "id")
        if unknown:
            _fail("GPU.apply_updates", f"unknown or immutable fields: {unknown}")
        for key, value in updates.items():
            if key == "health_status":
                value = _as_enum(HealthStatus, value, "GPU.health_status")
            setattr(self, key, copy.deepcopy(value))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> GPU:
        parsed = _expect_object(
            data,
            "GPU",
            required={
                "id",
                "uuid",
                "name",
                "type",
                "pci_address",
                "temperature",
                "power_draw",
                "power_limit",
                "memory_total",
                "memory_used",
                "utilization",
                "clocks_sm",
                "clocks_mem",
            },
            optional={
                "ecc_enabled",
                "ecc_errors",
                "mig_mode",
                "mig_instances",
                "nvlinks",
                "health_status",
                "xid_errors",
                "persistence_mode",
                "allocated_job_id",
            },
        )
        ecc_raw = parsed.get("ecc_errors")
        job_raw = parsed.get("allocated_job_id")
        return cls(
            id=_as_int(parsed["id"], "GPU.id", minimum=0),
            uuid=_as_str(parsed["uuid"], "GPU.uuid"),
            name=_as_str(parsed["name"], "GPU.name"),
            type=_as_str(parsed["type"], "GPU.type"),
            pci_address=_as_str(parsed["pci_address"], "GPU.pci_address"),
            temperature=_as_float(parsed["temperature"], "GPU.temperature"),
            power_draw=_as_float(parsed["power_draw"], "GPU.power_draw", minimum=0.0),
            power_limit=_as_float(parsed["power_limit"], "GPU.power_limit", minimum=0.0),
            memory_total=_as_int(parsed["memory_total"], "GPU.memory_total", minimum=0),
            memory_used=_as_int(parsed["memory_used"], "GPU.memory_used", minimum=0),
            utilization=_as_float(parsed["utilization"], "GPU.utilization", minimum=0.0),
            clocks_sm=_as_int(parsed["clocks_sm"], "GPU.clocks_sm", minimum=0),
            clocks_mem=_as_int(parsed["clocks_mem"], "GPU.clocks_mem", minimum=0),
            ecc_enabled=_as_bool(parsed.get("ecc_enabled", True), "GPU.ecc_enabled"),
            ecc_errors=(
                EccErrors.from_dict(_as_mapping(ecc_raw, "GPU.ecc_errors"))
                if ecc_raw is not None
                else EccErrors()
            ),
            mig_mode=_as_bool(parsed.get("mig_mode", False), "GPU.mig_mode"),
            mig_instances=[
                MIGInstance.from_dict(_as_mapping(item, f"GPU.mig_instances[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed.get("mig_instances", []), "GPU.mig_instances")
                )
            ],
            nvlinks=[
                NVLinkConnection.from_dict(_as_mapping(item, f"GPU.nvlinks[{index}]"))
                for index, item in enumerate(_as_sequence(parsed.get("nvlinks", []), "GPU.nvlinks"))
            ],
            health_status=_as_enum(
                HealthStatus, parsed.get("health_status", HealthStatus.OK), "GPU.health_status"
            ),
            xid_errors=[
                XIDEvent.from_dict(_as_mapping(item, f"GPU.xid_errors[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed.get("xid_errors", []), "GPU.xid_errors")
                )
            ],
            persistence_mode=_as_bool(
                parsed.get("persistence_mode", True), "GPU.persistence_mode"
            ),
            allocated_job_id=(
                _as_int(job_raw, "GPU.allocated_job_id", minimum=0) if job_raw is not None else None
            ),
        )


@dataclass(slots=True)
class IBPort(CanonicalModel):
    port_number: int
    state: str = "Active"
    physical_state: str = "LinkUp"
    rate: int = 200
    lid: int = 0
    guid: str = "0x0"
    link_layer: str = "InfiniBand"
    symbol_errors: int = 0
    link_downed: int = 0
    port_rcv_errors: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> IBPort:
        parsed = _expect_object(
            data,
            "IBPort",
            required={"port_number"},
            optional={
                "state",
                "physical_state",
                "rate",
                "lid",
                "guid",
                "link_layer",
                "symbol_errors",
                "link_downed",
                "port_rcv_errors",
            },
        )
        return cls(
            port_number=_as_int(parsed["port_number"], "IBPort.port_number", minimum=0),
            state=_as_str(parsed.get("state", "Active"), "IBPort.state"),
            physical_state=_as_str(parsed.get("physical_state", "LinkUp"), "IBPort.physical_state"),
            rate=_as_int(parsed.get("rate", 200), "IBPort.rate", minimum=0),
            lid=_as_int(parsed.get("lid", 0), "IBPort.lid", minimum=0),
            guid=_as_str(parsed.get("guid", "0x0"), "IBPort.guid"),
            link_layer=_as_str(parsed.get("link_layer", "InfiniBand"), "IBPort.link_layer"),
            symbol_errors=_as_int(
                parsed.get("symbol_errors", 0), "IBPort.symbol_errors", minimum=0
            ),
            link_downed=_as_int(parsed.get("link_downed", 0), "IBPort.link_downed", minimum=0),
            port_rcv_errors=_as_int(
                parsed.get("port_rcv_errors", 0), "IBPort.port_rcv_errors", minimum=0
            ),
        )


@dataclass(slots=True)
class InfiniBandHCA(CanonicalModel):
    device_id: str
    ca_type: str
    firmware_version: str
    ports: list[IBPort] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> InfiniBandHCA:
        parsed = _expect_object(
            data,
            "InfiniBandHCA",
            required={"device_id", "ca_type", "firmware_version"},
            optional={"ports"},
        )
        return cls(
            device_id=_as_str(parsed["device_id"], "InfiniBandHCA.device_id"),
            ca_type=_as_str(parsed["ca_type"], "InfiniBandHCA.ca_type"),
            firmware_version=_as_str(parsed["firmware_version"], "InfiniBandHCA.firmware_version"),
            ports=[
                IBPort.from_dict(_as_mapping(item, f"InfiniBandHCA.ports[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed.get("ports", []), "InfiniBandHCA.ports")
                )
            ],
        )


@dataclass(slots=True)
class DPU(CanonicalModel):
    id: str
    model: str
    firmware_version: str
    mode: str = "DPU"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DPU:
        parsed = _expect_object(
            data, "DPU", required={"id", "model", "firmware_version"}, optional={"mode"}
        )
        return cls(
            id=_as_str(parsed["id"], "DPU.id"),
            model=_as_str(parsed["model"], "DPU.model"),
            firmware_version=_as_str(parsed["firmware_version"], "DPU.firmware_version"),
            mode=_as_str(parsed.get("mode", "DPU"), "DPU.mode"),
        )


@dataclass(slots=True)
class BMCSensor(CanonicalModel):
    name: str
    reading: float
    unit: str
    status: str = "ok"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> BMCSensor:
        parsed = _expect_object(
            data, "BMCSensor", required={"name", "reading", "unit"}, optional={"status"}
        )
        return cls(
            name=_as_str(parsed["name"], "BMCSensor.name"),
            reading=_as_float(parsed["reading"], "BMCSensor.reading"),
            unit=_as_str(parsed["unit"], "BMCSensor.unit", min_len=0),
            status=_as_str(parsed.get("status", "ok"), "BMCSensor.status"),
        )


@dataclass(slots=True)
class BMC(CanonicalModel):
    ip_address: str
    mac_address: str
    firmware_version: str
    manufacturer: str
    sensors: list[BMCSensor] = field(default_factory=list)
    power_state: PowerState = PowerState.ON

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> BMC:
        parsed = _expect_object(
            data,
            "BMC",
            required={"ip_address", "mac_address", "firmware_version", "manufacturer"},
            optional={"sensors", "power_state"},
        )
        return cls(
            ip_address=_as_str(parsed["ip_address"], "BMC.ip_address"),
            mac_address=_as_str(parsed["mac_address"], "BMC.mac_address"),
            firmware_version=_as_str(parsed["firmware_version"], "BMC.firmware_version"),
            manufacturer=_as_str(parsed["manufacturer"], "BMC.manufacturer"),
            sensors=[
                BMCSensor.from_dict(_as_mapping(item, f"BMC.sensors[{index}]"))
                for index, item in enumerate(_as_sequence(parsed.get("sensors", []), "BMC.sensors"))
            ],
            power_state=_as_enum(
                PowerState, parsed.get("power_state", PowerState.ON), "BMC.power_state"
            ),
        )


@dataclass(slots=True)
class DGXNode(CanonicalModel):
    id: str
    hostname: str
    system_type: str
    gpus: list[GPU]
    bmc: BMC
    cpu_model: str
    cpu_count: int
    ram_total: int
    ram_used: int
    os_version: str
    kernel_version: str
    nvidia_driver_version: str
    cuda_version: str
    dpus: list[DPU] = field(default_factory=list)
    hcas: list[InfiniBandHCA] = field(default_factory=list)
    health_status: HealthStatus = HealthStatus.OK
    slurm_state: SlurmNodeState = SlurmNodeState.IDLE
    slurm_reason: str | None = None

    def gpu(self, gpu_id: int | str) -> GPU | None:
        """Return the GPU with ``gpu_id`` (int or numeric string), if present."""

        index = coerce_gpu_id(gpu_id)
        if index is None:
            return None
        for candidate in self.gpus:
            if candidate.id == index:
                return candidate
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DGXNode:
        parsed = _expect_object(
            data,
            "DGXNode",
            required={
                "id",
                "hostname",
                "system_type",
                "gpus",
                "bmc",
                "cpu_model",
                "cpu_count",
                "ram_total",
                "ram_used",
                "os_version",
                "kernel_version",
                "nvidia_driver_version",
                "cuda_version",
            },
            optional={"dpus", "hcas", "health_status", "slurm_state", "slurm_reason"},
        )
        reason_raw = parsed.get("slurm_reason")
        return cls(
            id=_as_str(parsed["id"], "DGXNode.id"),
            hostname=_as_str(parsed["hostname"], "DGXNode.hostname"),
            system_type=_as_str(parsed["system_type"], "DGXNode.system_type"),
            gpus=[
                GPU.from_dict(_as_mapping(item, f"DGXNode.gpus[{index}]"))
                for index, item in enumerate(_as_sequence(parsed["gpus"], "DGXNode.gpus"))
            ],
            bmc=BMC.from_dict(_as_mapping(parsed["bmc"], "DGXNode.bmc")),
            cpu_model=_as_str(parsed["cpu_model"], "DGXNode.cpu_model"),
            cpu_count=_as_int(parsed["cpu_count"], "DGXNode.cpu_count", minimum=1),
            ram_total=_as_int(parsed["ram_total"], "DGXNode.ram_total", minimum=0),
            ram_used=_as_int(parsed["ram_used"], "DGXNode.ram_used", minimum=0),
            os_version=_as_str(parsed["os_version"], "DGXNode.os_version"),
            kernel_version=_as_str(parsed["kernel_version"], "DGXNode.kernel_version"),
            nvidia_driver_version=_as_str(
                parsed["nvidia_driver_version"], "DGXNode.nvidia_driver_version"
            ),
            cuda_version=_as_str(parsed["cuda_version"], "DGXNode.cuda_version"),
            dpus=[
                DPU.from_dict(_as_mapping(item, f"DGXNode.dpus[{index}]"))
                for index, item in enumerate(_as_sequence(parsed.get("dpus", []), "DGXNode.dpus"))
            ],
            hcas=[
                InfiniBandHCA.from_dict(_as_mapping(item, f"DGXNode.hcas[{index}]"))
                for index, item in enumerate(_as_sequence(parsed.get("hcas", []), "DGXNode.hcas"))
            ],
            health_status=_as_enum(
                HealthStatus, parsed.get("health_status", HealthStatus.OK), "DGXNode.health_status"
            ),
            slurm_state=_as_enum(
                SlurmNodeState,
                parsed.get("slurm_state", SlurmNodeState.IDLE),
                "DGXNode.slurm_state",
            ),
            slurm_reason=(
                _as_str(reason_raw, "DGXNode.slurm_reason", min_len=0)
                if reason_raw is not None
                else None
            ),
        )


@dataclass(slots=True)
class SlurmPartition(CanonicalModel):
    name: str
    nodes: list[str] = field(default_factory=list)
    default: bool = False
    state: str = "up"
    max_time: str = "infinite"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SlurmPartition:
        parsed = _expect_object(
            data,
            "SlurmPartition",
            required={"name"},
            optional={"nodes", "default", "state", "max_time"},
        )
        return cls(
            name=_as_str(parsed["name"], "SlurmPartition.name"),
            nodes=[
                _as_str(item, f"SlurmPartition.nodes[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("nodes", []), "SlurmPartition.nodes")
                )
            ],
            default=_as_bool(parsed.get("default", False), "SlurmPartition.default"),
            state=_as_str(parsed.get("state", "up"), "SlurmPartition.state"),
            max_time=_as_str(parsed.get("max_time", "infinite"), "SlurmPartition.max_time"),
        )


@dataclass(slots=True)
class SlurmConfig(CanonicalModel):
    control_machine: str
    partitions: list[SlurmPartition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SlurmConfig:
        parsed = _expect_object(
            data, "SlurmConfig", required={"control_machine"}, optional={"partitions"}
        )
        return cls(
            control_machine=_as_str(parsed["control_machine"], "SlurmConfig.control_machine"),
            partitions=[
                SlurmPartition.from_dict(_as_mapping(item, f"SlurmConfig.partitions[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed.get("partitions", []), "SlurmConfig.partitions")
                )
            ],
        )


@dataclass(slots=True)
class BCMHighAvailability(CanonicalModel):
    enabled: bool = False
    primary: str = ""
    secondary: str = ""
    state: str = "Inactive"

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> BCMHighAvailability:
        parsed = _expect_object(
            data,
            "BCMHighAvailability",
            optional={"enabled", "primary", "secondary", "state"},
        )
        return cls(
            enabled=_as_bool(parsed.get("enabled", False), "BCMHighAvailability.enabled"),
            primary=_as_str(parsed.get("primary", ""), "BCMHighAvailability.primary", min_len=0),
            secondary=_as_str(
                parsed.get("secondary", ""), "BCMHighAvailability.secondary", min_len=0
            ),
            state=_as_str(parsed.get("state", "Inactive"), "BCMHighAvailability.state"),
        )


@dataclass(slots=True)
class ClusterConfig(CanonicalModel):
    name: str
    nodes: list[DGXNode]
    fabric_topology: str = "FatTree"
    bcm_ha: BCMHighAvailability = field(default_factory=BCMHighAvailability)
    slurm_config: SlurmConfig = field(default_factory=lambda: SlurmConfig(control_machine=""))

    def node(self, node_id: str) -> DGXNode | None:
        for candidate in self.nodes:
            if candidate.id == node_id:
                return candidate
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ClusterConfig:
        parsed = _expect_object(
            data,
            "ClusterConfig",
            required={"name", "nodes"},
            optional={"fabric_topology", "bcm_ha", "slurm_config"},
        )
        bcm_raw = parsed.get("bcm_ha")
        slurm_raw = parsed.get("slurm_config")
        return cls(
            name=_as_str(parsed["name"], "ClusterConfig.name"),
            nodes=[
                DGXNode.from_dict(_as_mapping(item, f"ClusterConfig.nodes[{index}]"))
                for index, item in enumerate(_as_sequence(parsed["nodes"], "ClusterConfig.nodes"))
            ],
            fabric_topology=_as_str(
                parsed.get("fabric_topology", "FatTree"), "ClusterConfig.fabric_topology"
            ),
            bcm_ha=(
                BCMHighAvailability.from_dict(_as_mapping(bcm_raw, "ClusterConfig.bcm_ha"))
                if bcm_raw is not None
                else BCMHighAvailability()
            ),
            slurm_config=(
                SlurmConfig.from_dict(_as_mapping(slurm_raw, "ClusterConfig.slurm_config"))
                if slurm_raw is not None
                else SlurmConfig(control_machine="")
            ),
        )


def coerce_gpu_id(value: int | str) -> int | None:
    """Normalize a GPU index given as ``int`` or numeric string."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return None


def utc_now() -> datetime:
    return datetime.now(UTC)


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _field_names(instance: CanonicalModel) -> frozenset[str]:
    return frozenset(item.name for item in fields(cast("Any", instance)))


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str] | None = None,
    optional: set[str] | None = None,
) -> dict[str, object]:
    parsed = _as_mapping(value, path)
    required_keys = required or set()
    allowed = required_keys | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required_keys if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item
    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    return normalized


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_float(value: object, path: str, *, minimum: float | None = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    if minimum is not None and parsed < minimum:
        _fail(path, f"must be >= {minimum}")
    return parsed


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return cast("JSONValue", value.value)
    if isinstance(value, datetime):
        normalized = (
            value.astimezone(UTC) if value.tzinfo is not None else value.replace(tzinfo=UTC)
        )
        return normalized.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, (list, tuple)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value) and not isinstance(value, type):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


__all__ = [
    "BCMHighAvailability",
    "BMC",
    "BMCSensor",
    "CanonicalModel",
    "ClusterConfig",
    "DGXNode",
    "DPU",
    "EccCounters",
    "EccErrors",
    "GPU",
    "HealthStatus",
    "IBPort",
    "InfiniBandHCA",
    "JSONScalar",
    "JSONValue",
    "LinkStatus",
    "MIGInstance",
    "NVLinkConnection",
    "PowerState",
    "SlurmConfig",
    "SlurmNodeState",
    "SlurmPartition",
    "XIDEvent",
    "XIDSeverity",
    "coerce_gpu_id",
    "utc_now",
]
