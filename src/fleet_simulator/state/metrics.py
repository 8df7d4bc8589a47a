"""Background drift of GPU telemetry between commands."""

from __future__ import annotations

import random
from collections.abc import Iterable
from typing import Final

from fleet_simulator.domain.cluster_factory import HARDWARE_SPECS
from fleet_simulator.domain.models import GPU, DGXNode
from fleet_simulator.state.mutations import StateMutator

IDLE_POWER_RATIO: Final[float] = 0.15
POWER_SMOOTHING: Final[float] = 0.15
TEMPERATURE_SMOOTHING: Final[float] = 0.1
CLOCK_SMOOTHING: Final[float] = 0.2
AMBIENT_TEMPERATURE: Final[float] = 32.0
TEMPERATURE_RANGE: Final[float] = 48.0
THROTTLE_TEMPERATURE: Final[float] = 70.0
THROTTLE_MHZ_PER_DEGREE: Final[float] = 10.0
MIN_SM_CLOCK_MHZ: Final[int] = 300
DEFAULT_BOOST_CLOCK_MHZ: Final[int] = 1410


class MetricsSimulator:
    """Moves utilization, power, temperature and SM clocks toward load-driven targets.

    GPUs bound to a job wander around their current utilization; idle GPUs
    sit near zero. Power follows utilization, temperature follows power, and
    SM clocks back off above the throttle temperature.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()

    def tick(self, nodes: Iterable[DGXNode], mutator: StateMutator) -> int:
        """Advance every GPU by one step; returns the number of GPUs updated."""

        updated = 0
        for node in nodes:
            spec = HARDWARE_SPECS.get(node.system_type)
            boost = spec.boost_clock_mhz if spec is not None else DEFAULT_BOOST_CLOCK_MHZ
            for gpu in node.gpus:
                metrics = self.next_metrics(gpu, boost_clock_mhz=boost)
                if mutator.update_gpu(node.id, gpu.id, metrics, "metrics:tick"):
                    updated += 1
        return updated

    def next_metrics(
        self, gpu: GPU, *, boost_clock_mhz: int = DEFAULT_BOOST_CLOCK_MHZ
    ) -> dict[str, object]:
        if gpu.allocated_job_id is not None:
            utilization = _clamp(gpu.utilization + (self._rng.random() - 0.5) * 1.0, 5.0, 100.0)
            memory_used = gpu.memory_used + (self._rng.random() - 0.5) * 20
        else:
            utilization = self._rng.random() * 2
            memory_used = 50 + self._rng.random() * 150
        memory_used = int(_clamp(memory_used, 0, gpu.memory_total))

        idle_power = gpu.power_limit * IDLE_POWER_RATIO
        target_power = idle_power + utilization / 100 * (gpu.power_limit - idle_power)
        power_draw = gpu.power_draw + (target_power - gpu.power_draw) * POWER_SMOOTHING
        power_draw = _clamp(power_draw, idle_power * 0.8, gpu.power_limit)

        target_temperature = AMBIENT_TEMPERATURE + power_draw / gpu.power_limit * TEMPERATURE_RANGE
        temperature = (
            gpu.temperature + (target_temperature - gpu.temperature) * TEMPERATURE_SMOOTHING
        )

        throttle = 0.0
        if temperature > THROTTLE_TEMPERATURE:
            throttle = (temperature - THROTTLE_TEMPERATURE) * THROTTLE_MHZ_PER_DEGREE
        target_clock = boost_clock_mhz - throttle
        clocks_sm = gpu.clocks_sm + (target_clock - gpu.clocks_sm) * CLOCK_SMOOTHING

        return {
            "utilization": round(utilization, 1),
            "memory_used": memory_used,
            "power_draw": round(power_draw, 1),
            "temperature": round(temperature, 1),
            "clocks_sm": max(MIN_SM_CLOCK_MHZ, round(clocks_sm)),
        }


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


__all__ = ["MetricsSimulator"]
