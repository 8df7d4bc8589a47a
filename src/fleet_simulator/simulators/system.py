"""Node-local system tools: ``dmesg``, ``hostname``, ``ipmitool`` and ``ibstat``."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from fleet_simulator.constants import EXIT_NOT_FOUND
from fleet_simulator.domain.models import utc_now
from fleet_simulator.simulators.base import BaseSimulator, CommandContext, SimulatorMetadata

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import CommandResult, ParsedCommand
    from fleet_simulator.domain.models import DGXNode

EXIT_IBSTAT_NOT_FOUND: Final[int] = 255
BOOT_LEAD_SECONDS: Final[float] = 3600.0

_BOOT_MESSAGES: Final[tuple[tuple[float, str, str], ...]] = (
    (0.000000, "info", "Linux version {kernel} (buildd@lcy02-amd64) #101-Ubuntu SMP"),
    (1.204312, "info", "pci 0000:00:01.0: PCI bridge to [bus 01]"),
    (4.882019, "info", "mlx5_core 0000:0c:00.0: firmware version: 28.39.1002"),
    (6.310442, "info", "nvidia: module license 'NVIDIA' taints kernel."),
    (6.512877, "info", "NVRM: loading NVIDIA UNIX x86_64 Kernel Module  {driver}"),
    (7.004215, "info", "nvidia-nvswitch: Probing device 0000:c3:00.0"),
)


class SystemSimulator(BaseSimulator):
    def get_metadata(self) -> SimulatorMetadata:
        return SimulatorMetadata(
            name="system",
            version="util-linux 2.37.2",
            description="Kernel log, host identity, BMC and InfiniBand status tools",
            commands=("dmesg", "hostname", "ipmitool", "ibstat"),
        )

    def execute(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        info = self.handle_help(parsed)
        if info is not None:
            return info
        node = self.resolve_node(context)
        if node is None:
            return self.create_error(
                f"{parsed.base_command}: node {context.current_node} is unreachable"
            )
        if parsed.base_command == "dmesg":
            return self._dmesg(parsed, node, context)
        if parsed.base_command == "hostname":
            if self.has_any_flag(parsed, "f", "fqdn"):
                return self.create_success(node.hostname)
            return self.create_success(node.hostname.split(".", 1)[0])
        if parsed.base_command == "ipmitool":
            return self._ipmitool(parsed, node)
        if parsed.base_command == "ibstat":
            return self._ibstat(parsed, node)
        return self.create_error(f"{parsed.base_command}: command not found", EXIT_NOT_FOUND)

    def _dmesg(
        self, parsed: ParsedCommand, node: DGXNode, context: CommandContext
    ) -> CommandResult:
        if self.has_any_flag(parsed, "C", "clear"):
            self._clear_kernel_log(node, context, "dmesg -C")
            return self.create_success("")
        output = self._render_dmesg(parsed, node)
        if self.has_any_flag(parsed, "c", "read-clear"):
            self._clear_kernel_log(node, context, "dmesg -c")
        return self.create_success(output)

    def _clear_kernel_log(self, node: DGXNode, context: CommandContext, command: str) -> None:
        """Drop the XID events behind the driver lines, one GPU update each."""

        mutator = self.resolve_mutator(context)
        for gpu in node.gpus:
            if gpu.xid_errors:
                mutator.update_gpu(node.id, gpu.id, {"xid_errors": []}, command)

    def _render_dmesg(self, parsed: ParsedCommand, node: DGXNode) -> str:
        levels = {
            item.strip() for item in (self.flag_value(parsed, "l", "level") or "").split(",")
        } - {""}
        entries: list[tuple[float, str, str]] = [
            (
                offset,
                level,
                text.format(kernel=node.kernel_version, driver=node.nvidia_driver_version),
            )
            for offset, level, text in _BOOT_MESSAGES
        ]
        boot = _boot_time(node)
        for gpu in node.gpus:
            for event in gpu.xid_errors:
                entries.append(
                    (
                        (event.timestamp - boot).total_seconds(),
                        "err",
                        f"NVRM: Xid (PCI:{gpu.pci_address}): {event.code}, {event.description}",
                    )
                )
        entries.sort(key=lambda entry: entry[0])

        human_time = self.has_any_flag(parsed, "T", "ctime")
        lines = []
        for offset, level, text in entries:
            if levels and level not in levels:
                continue
            if human_time:
                stamp = (boot + timedelta(seconds=offset)).strftime("%a %b %d %H:%M:%S %Y")
                lines.append(f"[{stamp}] {text}")
            else:
                lines.append(f"[{offset:>12.6f}] {text}")
        return "\n".join(lines)

    def _ipmitool(self, parsed: ParsedCommand, node: DGXNode) -> CommandResult:
        words = self.arguments(parsed)
        if not words:
            return self.create_error(
                "No command provided!\nCommands: sensor, sdr, power, chassis, mc"
            )
        action = words[0]
        bmc = node.bmc
        if action == "sensor":
            return self.create_success(
                "\n".join(
                    f"{sensor.name:<16} | {sensor.reading:<10.3f} | {sensor.unit:<10} | "
                    f"{sensor.status:<4}"
                    for sensor in bmc.sensors
                )
            )
        if action == "sdr":
            return self.create_success(
                "\n".join(
                    f"{sensor.name:<16} | {sensor.reading:g} {sensor.unit:<12} | {sensor.status}"
                    for sensor in bmc.sensors
                )
            )
        if action in ("power", "chassis"):
            sub = words[1] if len(words) > 1 else ""
            state = bmc.power_state.value.lower()
            if action == "power" and sub == "status":
                return self.create_success(f"Chassis Power is {state}")
            if action == "chassis" and sub == "status":
                return self.create_success(
                    f"System Power         : {state}\n"
                    "Power Overload       : false\n"
                    "Main Power Fault     : false\n"
                    "Drive Fault          : false\n"
                    "Cooling/Fan Fault    : false"
                )
            return self.create_error(
                f"Chassis power control '{sub or '(none)'}' is not available in this simulation"
            )
        if action == "mc" and words[1:2] == ["info"]:
            return self.create_success(
                "Device ID                 : 32\n"
                f"Firmware Revision         : {bmc.firmware_version}\n"
                "IPMI Version              : 2.0\n"
                f"Manufacturer Name         : {bmc.manufacturer}"
            )
        return self.create_error(f"Invalid command: {' '.join(words)}")

    def _ibstat(self, parsed: ParsedCommand, node: DGXNode) -> CommandResult:
        if self.has_any_flag(parsed, "l", "list_of_cas"):
            return self.create_success("\n".join(hca.device_id for hca in node.hcas))
        words = self.arguments(parsed)
        hcas = list(node.hcas)
        if words:
            hcas = [hca for hca in hcas if hca.device_id == words[0]]
            if not hcas:
                return self.create_error(
                    f"ibpanic: [{node.id}] main: stat of IB device '{words[0]}' failed: "
                    "No such file or directory",
                    EXIT_IBSTAT_NOT_FOUND,
                )
        blocks = []
        for hca in hcas:
            lines = [
                f"CA '{hca.device_id}'",
                f"\tCA type: {hca.ca_type}",
                f"\tNumber of ports: {len(hca.ports)}",
                f"\tFirmware version: {hca.firmware_version}",
            ]
            for port in hca.ports:
                lines.extend(
                    [
                        f"\tPort {port.port_number}:",
                        f"\t\tState: {port.state}",
                        f"\t\tPhysical state: {port.physical_state}",
                        f"\t\tRate: {port.rate}",
                        f"\t\tBase lid: {port.lid}",
                        f"\t\tPort GUID: {port.guid}",
                        f"\t\tLink layer: {port.link_layer}",
                    ]
                )
            blocks.append("\n".join(lines))
        return self.create_success("\n".join(blocks))


def _boot_time(node: DGXNode) -> datetime:
    """Place boot shortly before the oldest XID so kernel offsets stay positive."""

    stamps = [event.timestamp for gpu in node.gpus for event in gpu.xid_errors]
    reference = min(stamps) if stamps else utc_now()
    return reference - timedelta(seconds=BOOT_LEAD_SECONDS)


__all__ = ["SystemSimulator"]
