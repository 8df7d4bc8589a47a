"""Slurm client simulators: ``sinfo``, ``squeue`` and ``scontrol``."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Final

from fleet_simulator.constants import EXIT_NOT_FOUND
from fleet_simulator.domain.models import SlurmNodeState
from fleet_simulator.simulators.base import BaseSimulator, CommandContext, SimulatorMetadata

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import CommandResult, ParsedCommand
    from fleet_simulator.domain.models import ClusterConfig, DGXNode, SlurmPartition

SLURM_VERSION: Final[str] = "slurm 23.02.7"

# ``scontrol update state=`` values and the node state they leave behind.
_UPDATE_STATES: Final[dict[str, SlurmNodeState]] = {
    "drain": SlurmNodeState.DRAIN,
    "down": SlurmNodeState.DOWN,
    "resume": SlurmNodeState.IDLE,
    "undrain": SlurmNodeState.IDLE,
    "idle": SlurmNodeState.IDLE,
}
_REASON_REQUIRED: Final[frozenset[SlurmNodeState]] = frozenset(
    {SlurmNodeState.DRAIN, SlurmNodeState.DOWN}
)


class SlurmSimulator(BaseSimulator):
    def get_metadata(self) -> SimulatorMetadata:
        return SimulatorMetadata(
            name="slurm",
            version=SLURM_VERSION,
            description="Slurm workload manager client commands",
            commands=("sinfo", "squeue", "scontrol"),
        )

    def execute(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        info = self.handle_help(parsed) or self.handle_version(parsed, names=("version", "V"))
        if info is not None:
            return info
        if parsed.base_command == "sinfo":
            return self._sinfo(parsed, context)
        if parsed.base_command == "squeue":
            return self._squeue(parsed, context)
        if parsed.base_command == "scontrol":
            return self._scontrol(parsed, context)
        return self.create_error(f"{parsed.base_command}: command not found", EXIT_NOT_FOUND)

    # sinfo

    def _sinfo(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        cluster = self.resolve_cluster(context)
        partitions = _filter_partitions(cluster, self.flag_value(parsed, "p", "partition"))
        if partitions is None:
            return self.create_success(_SINFO_HEADER if not _noheader(parsed) else "")
        states = _state_filter(self.flag_value(parsed, "t", "states"))

        if self.has_any_flag(parsed, "R", "list-reasons"):
            return self.create_success(_render_reasons(cluster, parsed))
        if self.has_any_flag(parsed, "s", "summarize"):
            return self.create_success(_render_summary(cluster, partitions, parsed))
        if self.has_any_flag(parsed, "N", "Node"):
            return self.create_success(_render_node_oriented(cluster, partitions, states, parsed))

        lines = [] if _noheader(parsed) else [_SINFO_HEADER]
        for partition in partitions:
            grouped: dict[str, list[str]] = defaultdict(list)
            for node_id in partition.nodes:
                node = cluster.node(node_id)
                if node is None:
                    continue
                state = _state_label(node)
                if states and node.slurm_state.value not in states:
                    continue
                grouped[state].append(node_id)
            for state in sorted(grouped):
                node_ids = grouped[state]
                lines.append(
                    f"{_partition_label(partition):<9} {partition.state:>5} "
                    f"{partition.max_time:>10} {len(node_ids):>6} {state:>6} "
                    f"{compress_hostlist(node_ids)}"
                )
        return self.create_success("\n".join(lines))

    # squeue

    def _squeue(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        cluster = self.resolve_cluster(context)
        jobs: dict[int, list[str]] = defaultdict(list)
        for node in cluster.nodes:
            for job_id in sorted({g.allocated_job_id for g in node.gpus if g.allocated_job_id}):
                jobs[job_id].append(node.id)

        wanted_jobs = {
            item.strip() for item in (self.flag_value(parsed, "j", "jobs") or "").split(",")
        } - {""}
        user = self.flag_value(parsed, "u", "user")
        default_partition = next(
            (p.name for p in cluster.slurm_config.partitions if p.default), "batch"
        )
        lines = [] if _noheader(parsed) else [_SQUEUE_HEADER]
        for job_id in sorted(jobs):
            if wanted_jobs and str(job_id) not in wanted_jobs:
                continue
            if user is not None and user != "root":
                continue
            node_ids = jobs[job_id]
            lines.append(
                f"{job_id:>18} {default_partition:>9} {'job' + str(job_id):>8} {'root':>8}  R"
                f"       0:00 {len(node_ids):>6} {compress_hostlist(node_ids)}"
            )
        return self.create_success("\n".join(lines))

    # scontrol

    def _scontrol(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        words = self.arguments(parsed)
        if not words:
            return self.create_error("scontrol: no command given; try 'scontrol --help'")
        action = words[0].lower()
        if action == "show":
            return self._scontrol_show(words[1:], context)
        if action == "update":
            return self._scontrol_update(parsed, words[1:], context)
        if action == "ping":
            cluster = self.resolve_cluster(context)
            control = cluster.slurm_config.control_machine or "localhost"
            return self.create_success(f"Slurmctld(primary) at {control} is UP")
        if action == "reconfigure":
            if not context.is_root:
                return self.create_error("slurm_reconfigure error: Invalid user id")
            return self.create_success("")
        return self.create_error(f"invalid keyword: {words[0]}")

    def _scontrol_show(self, words: list[str], context: CommandContext) -> CommandResult:
        if not words:
            return self.create_error("invalid entity: (null) for keyword: show")
        entity = words[0].lower().removesuffix("s")
        name = words[1] if len(words) > 1 else None
        cluster = self.resolve_cluster(context)
        if entity == "node":
            nodes = cluster.nodes if name is None else [n for n in cluster.nodes if n.id == name]
            if not nodes:
                return self.create_error(f"Node {name} not found")
            return self.create_success("\n\n".join(_render_node(cluster, n) for n in nodes))
        if entity == "partition":
            partitions = [
                p for p in cluster.slurm_config.partitions if name is None or p.name == name
            ]
            if not partitions:
                return self.create_error(f"Partition {name} not found")
            return self.create_success("\n\n".join(_render_partition(p) for p in partitions))
        return self.create_error(f"invalid entity: {words[0]} for keyword: show")

    def _scontrol_update(
        self, parsed: ParsedCommand, words: list[str], context: CommandContext
    ) -> CommandResult:
        assignments: dict[str, str] = {}
        for word in words:
            key, sep, value = word.partition("=")
            if not sep:
                return self.create_error(f"Invalid input: {word}\nRequest aborted")
            assignments[key.strip().lower()] = value.strip()

        node_name = assignments.get("nodename")
        if node_name is None:
            return self.create_error("No valid entity in update command\nRequest aborted")
        if not context.is_root:
            return self.create_error("slurm_update error: Invalid user id")

        state_text = assignments.get("state", "").lower()
        new_state = _UPDATE_STATES.get(state_text)
        if new_state is None:
            return self.create_error(f"Invalid node state specified: {state_text or '(null)'}")
        reason = assignments.get("reason") or None
        if new_state in _REASON_REQUIRED and reason is None:
            return self.create_error(
                "You must specify a reason when DOWNING or DRAINING a node. Request denied"
            )
        if new_state is SlurmNodeState.IDLE:
            reason = None

        cluster = self.resolve_cluster(context)
        if cluster.node(node_name) is None:
            return self.create_error("slurm_update error: Invalid node name specified")
        self.resolve_mutator(context).set_slurm_state(node_name, new_state, reason, parsed.raw)
        return self.create_success("")


_SINFO_HEADER: Final[str] = "PARTITION AVAIL  TIMELIMIT  NODES  STATE NODELIST"
_SQUEUE_HEADER: Final[str] = (
    "             JOBID PARTITION     NAME     USER ST       TIME  NODES NODELIST(REASON)"
)
_REASONS_HEADER: Final[str] = "REASON               USER      TIMESTAMP           NODELIST"


def compress_hostlist(node_ids: list[str]) -> str:
    """Fold ``dgx-00,dgx-01,dgx-02`` into ``dgx-[00-02]``; other names pass through."""

    if not node_ids:
        return ""
    prefixes: dict[str, list[str]] = defaultdict(list)
    passthrough: list[str] = []
    for node_id in node_ids:
        prefix, sep, suffix = node_id.rpartition("-")
        if sep and suffix.isdigit():
            prefixes[prefix].append(suffix)
        else:
            passthrough.append(node_id)

    parts: list[str] = []
    for prefix, suffixes in prefixes.items():
        if len(suffixes) == 1:
            parts.append(f"{prefix}-{suffixes[0]}")
            continue
        width = len(suffixes[0])
        numbers = sorted(int(item) for item in suffixes)
        ranges: list[str] = []
        start = previous = numbers[0]
        for number in [*numbers[1:], None]:
            if number is not None and number == previous + 1:
                previous = number
                continue
            if start == previous:
                ranges.append(f"{start:0{width}d}")
            else:
                ranges.append(f"{start:0{width}d}-{previous:0{width}d}")
            if number is not None:
                start = previous = number
        parts.append(f"{prefix}-[{','.join(ranges)}]")
    return ",".join([*parts, *passthrough])


def _noheader(parsed: ParsedCommand) -> bool:
    return parsed.has_flag("h", "noheader")


def _partition_label(partition: SlurmPartition) -> str:
    return f"{partition.name}*" if partition.default else partition.name


def _state_label(node: DGXNode) -> str:
    return node.slurm_state.value


def _state_filter(text: str | None) -> set[str]:
    if not text:
        return set()
    return {item.strip().lower() for item in text.split(",") if item.strip()}


def _filter_partitions(cluster: ClusterConfig, name: str | None) -> list[SlurmPartition] | None:
    partitions = list(cluster.slurm_config.partitions)
    if name is None:
        return partitions
    wanted = {item.strip() for item in name.split(",")}
    matched = [partition for partition in partitions if partition.name in wanted]
    return matched or None


def _render_node_oriented(
    cluster: ClusterConfig,
    partitions: list[SlurmPartition],
    states: set[str],
    parsed: ParsedCommand,
) -> str:
    long_format = parsed.has_flag("l", "long")
    lines: list[str] = []
    if not _noheader(parsed):
        header = "NODELIST   NODES PARTITION       STATE"
        if long_format:
            header += " CPUS    S:C:T MEMORY REASON"
        lines.append(header)
    for partition in partitions:
        for node_id in partition.nodes:
            node = cluster.node(node_id)
            if node is None or (states and node.slurm_state.value not in states):
                continue
            line = f"{node.id:<10} {1:>5} {_partition_label(partition):<9} {_state_label(node):>11}"
            if long_format:
                line += (
                    f" {node.cpu_count:>4} 2:{node.cpu_count // 4}:2 "
                    f"{node.ram_total * 1024:>6} {node.slurm_reason or 'none'}"
                )
            lines.append(line)
    return "\n".join(lines)


def _render_summary(
    cluster: ClusterConfig, partitions: list[SlurmPartition], parsed: ParsedCommand
) -> str:
    lines = [] if _noheader(parsed) else ["PARTITION AVAIL  TIMELIMIT   NODES(A/I/O/T) NODELIST"]
    for partition in partitions:
        allocated = idle = other = 0
        for node_id in partition.nodes:
            node = cluster.node(node_id)
            if node is None:
                continue
            if node.slurm_state in (SlurmNodeState.ALLOC, SlurmNodeState.MIXED):
                allocated += 1
            elif node.slurm_state is SlurmNodeState.IDLE:
                idle += 1
            else:
                other += 1
        counts = f"{allocated}/{idle}/{other}/{allocated + idle + other}"
        lines.append(
            f"{_partition_label(partition):<9} {partition.state:>5} {partition.max_time:>10} "
            f"{counts:>16} {compress_hostlist(list(partition.nodes))}"
        )
    return "\n".join(lines)


def _render_reasons(cluster: ClusterConfig, parsed: ParsedCommand) -> str:
    lines = [] if _noheader(parsed) else [_REASONS_HEADER]
    by_reason: dict[str, list[str]] = defaultdict(list)
    for node in cluster.nodes:
        if node.slurm_state in (SlurmNodeState.DRAIN, SlurmNodeState.DOWN):
            by_reason[node.slurm_reason or "Not responding"].append(node.id)
    for reason in sorted(by_reason):
        lines.append(
            f"{reason[:20]:<20} {'root':<9} {'Unknown':<19} {compress_hostlist(by_reason[reason])}"
        )
    return "\n".join(lines)


def _render_node(cluster: ClusterConfig, node: DGXNode) -> str:
    partitions = ",".join(
        partition.name
        for partition in cluster.slurm_config.partitions
        if node.id in partition.nodes
    )
    allocated = sum(1 for gpu in node.gpus if gpu.allocated_job_id is not None)
    lines = [
        f"NodeName={node.id} Arch=x86_64 CoresPerSocket={node.cpu_count // 2}",
        f"   CPUAlloc=0 CPUTot={node.cpu_count} CPULoad=0.00",
        f"   Gres=gpu:{len(node.gpus)}",
        f"   GresUsed=gpu:{allocated}",
        f"   NodeAddr={node.id} NodeHostName={node.hostname}",
        f"   OS=Linux {node.kernel_version}",
        f"   RealMemory={node.ram_total * 1024} AllocMem=0 "
        f"FreeMem={(node.ram_total - node.ram_used) * 1024}",
        f"   State={node.slurm_state.value.upper()} ThreadsPerCore=2",
        f"   Partitions={partitions}",
    ]
    if node.slurm_reason:
        lines.append(f"   Reason={node.slurm_reason} [root]")
    return "\n".join(lines)


def _render_partition(partition: SlurmPartition) -> str:
    return "\n".join(
        [
            f"PartitionName={partition.name}",
            f"   Default={'YES' if partition.default else 'NO'} MaxTime={partition.max_time}",
            f"   Nodes={compress_hostlist(list(partition.nodes))}",
            f"   State={partition.state.upper()} TotalNodes={len(partition.nodes)}",
        ]
    )


__all__ = ["SlurmSimulator", "compress_hostlist"]
