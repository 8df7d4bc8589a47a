"""Global and per-scenario simulation state."""

from fleet_simulator.state.faults import FaultSpec, apply_faults_to_context
from fleet_simulator.state.metrics import MetricsSimulator
from fleet_simulator.state.mutations import MutationType, StateMutation, StateMutator
from fleet_simulator.state.scenario_context import ScenarioContext, ScenarioContextManager
from fleet_simulator.state.store import SimulationStore

__all__ = [
    "FaultSpec",
    "MetricsSimulator",
    "MutationType",
    "ScenarioContext",
    "ScenarioContextManager",
    "SimulationStore",
    "StateMutation",
    "StateMutator",
    "apply_faults_to_context",
]
