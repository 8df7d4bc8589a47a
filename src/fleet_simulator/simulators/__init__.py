"""Per-tool simulators and the shared simulator contract."""

from fleet_simulator.simulators.base import (
    BaseSimulator,
    CommandContext,
    ExplicitSource,
    GlobalSource,
    ScenarioSource,
    SimulatorMetadata,
    StateSource,
    resolve_state_source,
)
from fleet_simulator.simulators.nvidia_smi import NvidiaSmiSimulator
from fleet_simulator.simulators.slurm import SlurmSimulator
from fleet_simulator.simulators.system import SystemSimulator

__all__ = [
    "BaseSimulator",
    "CommandContext",
    "ExplicitSource",
    "GlobalSource",
    "NvidiaSmiSimulator",
    "ScenarioSource",
    "SimulatorMetadata",
    "SlurmSimulator",
    "StateSource",
    "SystemSimulator",
    "resolve_state_source",
]
