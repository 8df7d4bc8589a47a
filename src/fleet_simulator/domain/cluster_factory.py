"""Deterministic construction of simulated DGX clusters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from fleet_simulator.constants import DEFAULT_CLUSTER_NAME, DEFAULT_SYSTEM_TYPE
from fleet_simulator.domain.models import (
    BMC,
    DPU,
    GPU,
    BCMHighAvailability,
    BMCSensor,
    ClusterConfig,
    DGXNode,
    IBPort,
    InfiniBandHCA,
    NVLinkConnection,
    SlurmConfig,
    SlurmPartition,
)


@dataclass(frozen=True, slots=True)
class HardwareSpec:
    system_type: str
    gpu_model: str
    gpu_memory_mib: int
    tdp_watts: int
    boost_clock_mhz: int
    memory_clock_mhz: int
    nvlinks_per_gpu: int
    nvlink_speed_gbs: float
    hca_model: str
    port_rate_gbs: int
    cpu_model: str
    cpu_count: int
    ram_total_gb: int


HARDWARE_SPECS: Final[dict[str, HardwareSpec]] = {
    "DGX-A100": HardwareSpec(
        system_type="DGX-A100",
        gpu_model="NVIDIA A100-SXM4-80GB",
        gpu_memory_mib=81920,
        tdp_watts=400,
        boost_clock_mhz=1410,
        memory_clock_mhz=1215,
        nvlinks_per_gpu=12,
        nvlink_speed_gbs=25.0,
        hca_model="ConnectX-6",
        port_rate_gbs=200,
        cpu_model="AMD EPYC 7742",
        cpu_count=128,
        ram_total_gb=1024,
    ),
    "DGX-H100": HardwareSpec(
        system_type="DGX-H100",
        gpu_model="NVIDIA H100-SXM5-80GB",
        gpu_memory_mib=81920,
        tdp_watts=700,
        boost_clock_mhz=1830,
        memory_clock_mhz=2619,
        nvlinks_per_gpu=18,
        nvlink_speed_gbs=25.0,
        hca_model="ConnectX-7",
        port_rate_gbs=400,
        cpu_model="Intel Xeon 8480C",
        cpu_count=112,
        ram_total_gb=2048,
    ),
    "DGX-H200": HardwareSpec(
        system_type="DGX-H200",
        gpu_model="NVIDIA H200-SXM-141GB",
        gpu_memory_mib=144384,
        tdp_watts=700,
        boost_clock_mhz=1830,
        memory_clock_mhz=2619,
        nvlinks_per_gpu=18,
        nvlink_speed_gbs=25.0,
        hca_model="ConnectX-7",
        port_rate_gbs=400,
        cpu_model="Intel Xeon 8480C",
        cpu_count=112,
        ram_total_gb=2048,
    ),
    "DGX-B200": HardwareSpec(
        system_type="DGX-B200",
        gpu_model="NVIDIA B200-SXM-192GB",
        gpu_memory_mib=196608,
        tdp_watts=1000,
        boost_clock_mhz=1965,
        memory_clock_mhz=3996,
        nvlinks_per_gpu=18,
        nvlink_speed_gbs=50.0,
        hca_model="ConnectX-7",
        port_rate_gbs=400,
        cpu_model="Intel Xeon 8570",
        cpu_count=112,
        ram_total_gb=4096,
    ),
}

BASELINE_GPU_TEMPERATURE: Final[float] = 45.0
_DRIVER_VERSION: Final[str] = "535.129.03"
_CUDA_VERSION: Final[str] = "12.2"
_OS_VERSION: Final[str] = "Ubuntu 22.04.3 LTS"
_KERNEL_VERSION: Final[str] = "5.15.0-91-generic"


def hardware_spec(system_type: str) -> HardwareSpec:
    try:
        return HARDWARE_SPECS[system_type]
    except KeyError as exc:
        allowed = ", ".join(sorted(HARDWARE_SPECS))
        raise ValueError(
            f"system_type: invalid value {system_type!r}; expected one of: {allowed}"
        ) from exc


def create_default_cluster() -> ClusterConfig:
    """Return the eight-node DGX A100 training cluster."""

    return create_cluster(node_count=8, system_type=DEFAULT_SYSTEM_TYPE)


def create_cluster(
    *,
    node_count: int = 8,
    system_type: str = DEFAULT_SYSTEM_TYPE,
    gpus_per_node: int = 8,
    name: str = DEFAULT_CLUSTER_NAME,
) -> ClusterConfig:
    """Build a cluster of identical idle nodes of ``system_type``."""

    if node_count < 1:
        raise ValueError("node_count: must be >= 1")
    if gpus_per_node < 1:
        raise ValueError("gpus_per_node: must be >= 1")
    spec = hardware_spec(system_type)

    nodes = [_build_node(index, spec, gpus_per_node) for index in range(node_count)]
    node_ids = [node.id for node in nodes]
    return ClusterConfig(
        name=name,
        nodes=nodes,
        fabric_topology="FatTree",
        bcm_ha=BCMHighAvailability(
            enabled=True,
            primary="bcm-head-01",
            secondary="bcm-head-02",
            state="Active/Standby",
        ),
        slurm_config=SlurmConfig(
            control_machine="bcm-head-01",
            partitions=[
                SlurmPartition(name="batch", nodes=node_ids, default=True),
                SlurmPartition(name="debug", nodes=node_ids[:2], max_time="1:00:00"),
            ],
        ),
    )


def _build_node(index: int, spec: HardwareSpec, gpu_count: int) -> DGXNode:
    node_id = f"dgx-{index:02d}"
    return DGXNode(
        id=node_id,
        hostname=f"{node_id}.cluster.local",
        system_type=spec.system_type,
        gpus=[_build_gpu(index, gpu_index, spec) for gpu_index in range(gpu_count)],
        bmc=_build_bmc(index),
        cpu_model=spec.cpu_model,
        cpu_count=spec.cpu_count,
        ram_total=spec.ram_total_gb,
        ram_used=spec.ram_total_gb // 16,
        os_version=_OS_VERSION,
        kernel_version=_KERNEL_VERSION,
        nvidia_driver_version=_DRIVER_VERSION,
        cuda_version=_CUDA_VERSION,
        dpus=[
            DPU(id=f"{node_id}-dpu0", model="BlueField-3", firmware_version="32.39.1002"),
        ],
        hcas=[_build_hca(index, hca_index, spec) for hca_index in range(min(gpu_count, 8))],
    )


def _build_gpu(node_index: int, gpu_index: int, spec: HardwareSpec) -> GPU:
    bus = (0x07, 0x0F, 0x47, 0x4E, 0x87, 0x90, 0xB7, 0xBD)[gpu_index % 8]
    return GPU(
        id=gpu_index,
        uuid=f"GPU-{node_index:04x}{gpu_index:04x}-5a1e-4c0d-9f00-{node_index:06x}{gpu_index:06x}",
        name=spec.gpu_model,
        type=spec.system_type.removeprefix("DGX-"),
        pci_address=f"00000000:{bus:02X}:00.0",
        temperature=BASELINE_GPU_TEMPERATURE,
        power_draw=round(spec.tdp_watts * 0.15, 1),
        power_limit=float(spec.tdp_watts),
        memory_total=spec.gpu_memory_mib,
        memory_used=0,
        utilization=0.0,
        clocks_sm=spec.boost_clock_mhz,
        clocks_mem=spec.memory_clock_mhz,
        nvlinks=[
            NVLinkConnection(link_id=link, speed=spec.nvlink_speed_gbs)
            for link in range(spec.nvlinks_per_gpu)
        ],
    )


def _build_bmc(node_index: int) -> BMC:
    return BMC(
        ip_address=f"10.0.1.{node_index + 10}",
        mac_address=f"b8:ce:f6:00:{node_index:02x}:01",
        firmware_version="1.13.2",
        manufacturer="NVIDIA",
        sensors=[
            BMCSensor(name="CPU0 Temp", reading=42.0, unit="degrees C"),
            BMCSensor(name="CPU1 Temp", reading=44.0, unit="degrees C"),
            BMCSensor(name="Inlet Temp", reading=24.0, unit="degrees C"),
            BMCSensor(name="PSU0 Power", reading=1450.0, unit="Watts"),
            BMCSensor(name="FAN0", reading=9800.0, unit="RPM"),
        ],
    )


def _build_hca(node_index: int, hca_index: int, spec: HardwareSpec) -> InfiniBandHCA:
    guid = 0x0C42A1030000_0000 + (node_index << 8) + hca_index
    return InfiniBandHCA(
        device_id=f"mlx5_{hca_index}",
        ca_type=spec.hca_model,
        firmware_version="28.39.1002",
        ports=[
            IBPort(
                port_number=1,
                rate=spec.port_rate_gbs,
                lid=node_index * 16 + hca_index + 1,
                guid=f"0x{guid:016x}",
            )
        ],
    )


__all__ = [
    "BASELINE_GPU_TEMPERATURE",
    "HARDWARE_SPECS",
    "HardwareSpec",
    "create_cluster",
    "create_default_cluster",
    "hardware_spec",
]
