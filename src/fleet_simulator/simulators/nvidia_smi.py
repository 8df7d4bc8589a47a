"""``nvidia-smi`` simulator: queries, CSV property queries and root-only controls."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Final

from fleet_simulator.domain.cluster_factory import HARDWARE_SPECS
from fleet_simulator.domain.models import GPU, HealthStatus, LinkStatus
from fleet_simulator.simulators.base import BaseSimulator, CommandContext, SimulatorMetadata

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import CommandResult, ParsedCommand
    from fleet_simulator.domain.models import DGXNode

EXIT_INVALID_ARGUMENT: Final[int] = 2
EXIT_NOT_SUPPORTED: Final[int] = 3
EXIT_NOT_FOUND: Final[int] = 6
MIN_POWER_LIMIT_WATTS: Final[float] = 100.0

_INVALID_COMBINATION: Final[str] = (
    "Invalid combination of input arguments. Please run 'nvidia-smi -h' for help."
)

_MIG_PROFILES: Final[tuple[tuple[int, str, int, int], ...]] = (
    (19, "MIG 1g.10gb", 7, 9728),
    (15, "MIG 1g.20gb", 4, 19968),
    (14, "MIG 2g.20gb", 3, 19968),
    (9, "MIG 3g.40gb", 2, 40192),
    (5, "MIG 4g.40gb", 1, 40192),
    (0, "MIG 7g.80gb", 1, 80384),
)

_QueryField = tuple[str, Callable[[GPU], str]]

_QUERY_FIELDS: Final[dict[str, _QueryField]] = {
    "index": ("", lambda gpu: str(gpu.id)),
    "name": ("", lambda gpu: gpu.name),
    "uuid": ("", lambda gpu: gpu.uuid),
    "pci.bus_id": ("", lambda gpu: gpu.pci_address),
    "temperature.gpu": ("", lambda gpu: f"{gpu.temperature:.0f}"),
    "power.draw": ("[W]", lambda gpu: f"{gpu.power_draw:.2f}"),
    "power.limit": ("[W]", lambda gpu: f"{gpu.power_limit:.2f}"),
    "memory.total": ("[MiB]", lambda gpu: str(gpu.memory_total)),
    "memory.used": ("[MiB]", lambda gpu: str(gpu.memory_used)),
    "memory.free": ("[MiB]", lambda gpu: str(gpu.memory_total - gpu.memory_used)),
    "utilization.gpu": ("[%]", lambda gpu: f"{gpu.utilization:.0f}"),
    "clocks.sm": ("[MHz]", lambda gpu: str(gpu.clocks_sm)),
    "clocks.mem": ("[MHz]", lambda gpu: str(gpu.clocks_mem)),
    "persistence_mode": ("", lambda gpu: "Enabled" if gpu.persistence_mode else "Disabled"),
    "mig.mode.current": ("", lambda gpu: "Enabled" if gpu.mig_mode else "Disabled"),
    "ecc.mode.current": ("", lambda gpu: "Enabled" if gpu.ecc_enabled else "Disabled"),
    "ecc.errors.corrected.volatile.total": ("", lambda gpu: str(gpu.ecc_errors.single_bit)),
    "ecc.errors.uncorrected.volatile.total": ("", lambda gpu: str(gpu.ecc_errors.double_bit)),
}


class NvidiaSmiSimulator(BaseSimulator):
    def get_metadata(self) -> SimulatorMetadata:
        return SimulatorMetadata(
            name="nvidia-smi",
            version="535.129.03",
            description="NVIDIA System Management Interface",
            commands=("nvidia-smi",),
        )

    def execute(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        info = self.handle_help(parsed, names=("help", "h")) or self.handle_version(parsed)
        if info is not None:
            return info

        node = self.resolve_node(context)
        if node is None or not node.gpus:
            return self.create_error("No devices were found", EXIT_NOT_FOUND)

        if parsed.subcommands:
            return self._subcommand(parsed, node)

        selected = self._select_gpus(parsed, node)
        if isinstance(selected, str):
            return self.create_error(selected, EXIT_NOT_FOUND)

        if self.has_any_flag(parsed, "pl", "power-limit"):
            return self._set_power_limit(parsed, context, node, selected)
        if self.has_any_flag(parsed, "pm", "persistence-mode"):
            return self._set_persistence_mode(parsed, context, node, selected)
        if self.has_any_flag(parsed, "mig", "multi-instance-gpu"):
            return self._set_mig_mode(parsed, context, node, selected)
        if self.has_any_flag(parsed, "r", "gpu-reset"):
            return self._reset(context, node, selected)
        if self.has_any_flag(parsed, "L", "list-gpus"):
            return self.create_success(
                "\n".join(f"GPU {gpu.id}: {gpu.name} (UUID: {gpu.uuid})" for gpu in selected)
            )
        if self.has_any_flag(parsed, "query-gpu"):
            return self._query_gpu(parsed, selected)
        if self.has_any_flag(parsed, "q", "query"):
            return self.create_success(_render_query(node, selected))
        return self.create_success(_render_summary(node, selected))

    def _select_gpus(self, parsed: ParsedCommand, node: DGXNode) -> list[GPU] | str:
        target = self.flag_value(parsed, "i", "id")
        if target is None:
            return list(node.gpus)
        matches = [
            gpu
            for gpu in node.gpus
            if target in (str(gpu.id), gpu.uuid, gpu.pci_address)
        ]
        if not matches:
            return f"No GPU with identifier {target}: not found"
        return matches

    def _subcommand(self, parsed: ParsedCommand, node: DGXNode) -> CommandResult:
        name = parsed.subcommands[0]
        if name == "topo":
            return self.create_success(_render_topology(node))
        if name == "nvlink":
            return self.create_success(_render_nvlink(parsed, node))
        if name == "mig":
            return self._mig_listing(parsed, node)
        return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)

    def _mig_listing(self, parsed: ParsedCommand, node: DGXNode) -> CommandResult:
        if self.has_any_flag(parsed, "lgip", "list-gpu-instance-profiles"):
            lines = ["GPU  Name          ID    Instances   Memory"]
            for gpu in node.gpus:
                if not gpu.mig_mode:
                    continue
                lines.extend(
                    f"{gpu.id:>3}  {name:<12} {profile_id:>3}    {count:>2}/{count:<2}      "
                    f"{memory} MiB"
                    for profile_id, name, count, memory in _MIG_PROFILES
                )
            if len(lines) == 1:
                return self.create_error("No MIG-enabled devices found.", EXIT_NOT_SUPPORTED)
            return self.create_success("\n".join(lines))
        if self.has_any_flag(parsed, "lgi", "list-gpu-instances"):
            instances = [
                f"{gpu.id:>3}  {instance.profile:<12} {instance.instance_id:>3}  "
                f"{instance.memory_mib} MiB"
                for gpu in node.gpus
                for instance in gpu.mig_instances
            ]
            if not instances:
                return self.create_error("No GPU instances found: Not Found", EXIT_NOT_FOUND)
            return self.create_success("\n".join(["GPU  Name          ID  Memory", *instances]))
        return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)

    def _set_power_limit(
        self,
        parsed: ParsedCommand,
        context: CommandContext,
        node: DGXNode,
        selected: list[GPU],
    ) -> CommandResult:
        raw = self.flag_value(parsed, "pl", "power-limit")
        try:
            watts = float(raw) if raw is not None else None
        except ValueError:
            watts = None
        if watts is None:
            return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)

        spec = HARDWARE_SPECS.get(node.system_type)
        if spec is not None:
            maximum = float(spec.tdp_watts)
        else:
            maximum = max(gpu.power_limit for gpu in selected)
        if not MIN_POWER_LIMIT_WATTS <= watts <= maximum:
            return self.create_error(
                f"Provided power limit {watts:.2f} W is not a valid power limit which should be "
                f"between {MIN_POWER_LIMIT_WATTS:.2f} W and {maximum:.2f} W for GPU "
                f"{selected[0].pci_address}\nTerminating early due to previous errors.",
                EXIT_INVALID_ARGUMENT,
            )

        mutator = self.resolve_mutator(context)
        lines = []
        for gpu in selected:
            previous = gpu.power_limit
            updates: dict[str, object] = {"power_limit": watts}
            if gpu.power_draw > watts:
                updates["power_draw"] = watts
            mutator.update_gpu(node.id, gpu.id, updates, parsed.raw)
            lines.append(
                f"Power limit for GPU {gpu.pci_address} was set to {watts:.2f} W "
                f"from {previous:.2f} W."
            )
        lines.append("All done.")
        return self.create_success("\n".join(lines))

    def _set_persistence_mode(
        self,
        parsed: ParsedCommand,
        context: CommandContext,
        node: DGXNode,
        selected: list[GPU],
    ) -> CommandResult:
        enabled = _toggle(self.flag_value(parsed, "pm", "persistence-mode"))
        if enabled is None:
            return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)
        mutator = self.resolve_mutator(context)
        verb = "Enabled" if enabled else "Disabled"
        lines = []
        for gpu in selected:
            mutator.update_gpu(node.id, gpu.id, {"persistence_mode": enabled}, parsed.raw)
            lines.append(f"{verb} persistence mode for GPU {gpu.pci_address}.")
        lines.append("All done.")
        return self.create_success("\n".join(lines))

    def _set_mig_mode(
        self,
        parsed: ParsedCommand,
        context: CommandContext,
        node: DGXNode,
        selected: list[GPU],
    ) -> CommandResult:
        enabled = _toggle(self.flag_value(parsed, "mig", "multi-instance-gpu"))
        if enabled is None:
            return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)
        mutator = self.resolve_mutator(context)
        verb = "Enabled" if enabled else "Disabled"
        lines = []
        for gpu in selected:
            mutator.set_mig_mode(node.id, gpu.id, enabled, parsed.raw)
            lines.append(f"{verb} MIG Mode for GPU {gpu.pci_address}")
        lines.append("All done.")
        return self.create_success("\n".join(lines))

    def _reset(self, context: CommandContext, node: DGXNode, selected: list[GPU]) -> CommandResult:
        busy = [gpu for gpu in selected if gpu.allocated_job_id is not None]
        if busy:
            return self.create_error(
                f"GPU {busy[0].pci_address} is currently in use by another process.\n"
                "1 device is currently being used by one or more other processes.",
                EXIT_NOT_SUPPORTED,
            )
        mutator = self.resolve_mutator(context)
        lines = []
        for gpu in selected:
            for link in gpu.nvlinks:
                if link.status is LinkStatus.DOWN:
                    mutator.update_nvlink(
                        node.id,
                        gpu.id,
                        link.link_id,
                        {"status": LinkStatus.ACTIVE},
                        "nvidia-smi -r",
                    )
            mutator.update_gpu(
                node.id,
                gpu.id,
                {"xid_errors": [], "health_status": HealthStatus.OK, "utilization": 0.0},
                "nvidia-smi -r",
            )
            lines.append(f"GPU {gpu.pci_address} was successfully reset.")
        lines.append("All done.")
        return self.create_success("\n".join(lines))

    def _query_gpu(self, parsed: ParsedCommand, selected: list[GPU]) -> CommandResult:
        requested = self.flag_value(parsed, "query-gpu")
        if not requested:
            return self.create_error(_INVALID_COMBINATION, EXIT_INVALID_ARGUMENT)
        names = [item.strip() for item in requested.split(",") if item.strip()]
        for name in names:
            if name not in _QUERY_FIELDS:
                return self.create_error(
                    f'Field "{name}" is not a valid field to query.', EXIT_INVALID_ARGUMENT
                )

        format_options = {
            item.strip() for item in (self.flag_value(parsed, "format") or "").split(",")
        }
        if "csv" not in format_options:
            return self.create_error(
                "--format=csv is required with --query-gpu.", EXIT_INVALID_ARGUMENT
            )
        with_units = "nounits" not in format_options
        lines = []
        if "noheader" not in format_options:
            header = []
            for name in names:
                unit = _QUERY_FIELDS[name][0]
                header.append(f"{name} {unit}".rstrip() if with_units else name)
            lines.append(", ".join(header))
        for gpu in selected:
            values = []
            for name in names:
                unit, render = _QUERY_FIELDS[name]
                value = render(gpu)
                if with_units and unit:
                    value = f"{value} {unit.strip('[]')}"
                values.append(value)
            lines.append(", ".join(values))
        return self.create_success("\n".join(lines))


def _toggle(value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized in {"1", "ENABLED"}:
        return True
    if normalized in {"0", "DISABLED"}:
        return False
    return None


def _render_summary(node: DGXNode, gpus: list[GPU]) -> str:
    rule = "+" + "-" * 41 + "+" + "-" * 22 + "+" + "-" * 22 + "+"
    lines = [
        f"NVIDIA-SMI {node.nvidia_driver_version}    "
        f"Driver Version: {node.nvidia_driver_version}    CUDA Version: {node.cuda_version}",
        rule,
        "| GPU  Name                 Persistence-M | Bus-Id        Disp.A | Volatile Uncorr. ECC |",
        "| Fan  Temp   Perf          Pwr:Usage/Cap |         Memory-Usage | GPU-Util  Compute M. |",
        "|                                         |                      |               MIG M. |",
        rule.replace("-", "="),
    ]
    for gpu in gpus:
        persistence = "On" if gpu.persistence_mode else "Off"
        mig = "Enabled" if gpu.mig_mode else "Disabled"
        perf = "P0" if gpu.utilization > 10 else "P2"
        lines.append(
            f"| {gpu.id:>3}  {gpu.name[:24]:<24} {persistence:>5} | "
            f"{gpu.pci_address:<16} Off | {gpu.ecc_errors.double_bit:>20} |"
        )
        lines.append(
            f"| N/A  {gpu.temperature:>3.0f}C   {perf:<4} "
            f"{gpu.power_draw:>8.0f}W / {gpu.power_limit:>4.0f}W | "
            f"{gpu.memory_used:>7}MiB / {gpu.memory_total:>5}MiB | "
            f"{gpu.utilization:>7.0f}%      Default |"
        )
        lines.append(f"|{'':41}|{'':22}|{mig:>21} |")
        lines.append(rule)
    return "\n".join(lines)


def _render_query(node: DGXNode, gpus: list[GPU]) -> str:
    lines = [
        "==============NVSMI LOG==============",
        "",
        f"Driver Version                            : {node.nvidia_driver_version}",
        f"CUDA Version                              : {node.cuda_version}",
        "",
        f"Attached GPUs                             : {len(node.gpus)}",
    ]
    for gpu in gpus:
        xid_text = ", ".join(str(event.code) for event in gpu.xid_errors) or "None"
        lines.extend(
            [
                f"GPU {gpu.pci_address}",
                f"    Product Name                          : {gpu.name}",
                f"    GPU UUID                              : {gpu.uuid}",
                f"    Minor Number                          : {gpu.id}",
                f"    Persistence Mode                      : "
                f"{'Enabled' if gpu.persistence_mode else 'Disabled'}",
                "    MIG Mode",
                f"        Current                           : "
                f"{'Enabled' if gpu.mig_mode else 'Disabled'}",
                "    FB Memory Usage",
                f"        Total                             : {gpu.memory_total} MiB",
                f"        Used                              : {gpu.memory_used} MiB",
                f"        Free                              : "
                f"{gpu.memory_total - gpu.memory_used} MiB",
                "    Utilization",
                f"        Gpu                               : {gpu.utilization:.0f} %",
                "    ECC Errors",
                "        Volatile",
                f"            SRAM Correctable              : {gpu.ecc_errors.single_bit}",
                f"            SRAM Uncorrectable            : {gpu.ecc_errors.double_bit}",
                "    Temperature",
                f"        GPU Current Temp                  : {gpu.temperature:.0f} C",
                "    GPU Power Readings",
                f"        Power Draw                        : {gpu.power_draw:.2f} W",
                f"        Current Power Limit               : {gpu.power_limit:.2f} W",
                "    Clocks",
                f"        SM                                : {gpu.clocks_sm} MHz",
                f"        Memory                            : {gpu.clocks_mem} MHz",
                f"    Health Status                         : {gpu.health_status.value}",
                f"    XID Errors                            : {xid_text}",
                "",
            ]
        )
    return "\n".join(lines).rstrip()


def _render_topology(node: DGXNode) -> str:
    labels = [f"GPU{gpu.id}" for gpu in node.gpus]
    lines = ["\t" + "\t".join(labels) + "\tCPU Affinity"]
    half = max(1, len(node.gpus) // 2)
    for row in node.gpus:
        cells = []
        for column in node.gpus:
            if row.id == column.id:
                cells.append(" X ")
            else:
                active = sum(1 for link in row.nvlinks if link.status is LinkStatus.ACTIVE)
                cells.append(f"NV{active}" if active else "SYS")
        affinity = "0-63" if row.id < half else "64-127"
        lines.append(f"GPU{row.id}\t" + "\t".join(cells) + f"\t{affinity}")
    lines.extend(
        [
            "",
            "Legend:",
            "  X    = Self",
            "  SYS  = Connection traversing PCIe as well as the SMP interconnect",
            "  NV#  = Connection traversing a bonded set of # NVLinks",
        ]
    )
    return "\n".join(lines)


def _render_nvlink(parsed: ParsedCommand, node: DGXNode) -> str:
    target = parsed.flag_value("i", "id")
    lines = []
    for gpu in node.gpus:
        if target is not None and target != str(gpu.id):
            continue
        lines.append(f"GPU {gpu.id}: {gpu.name} (UUID: {gpu.uuid})")
        for link in gpu.nvlinks:
            if parsed.has_flag("error-counters", "e"):
                lines.append(
                    f"\t Link {link.link_id}: Replay Errors: {link.replay_errors}, "
                    f"Recovery Errors: 0, CRC Errors: {link.rx_errors + link.tx_errors}"
                )
            elif link.status is LinkStatus.ACTIVE:
                lines.append(f"\t Link {link.link_id}: {link.speed:g} GB/s")
            else:
                lines.append(f"\t Link {link.link_id}: <inactive>")
    return "\n".join(lines)


__all__ = ["NvidiaSmiSimulator"]
