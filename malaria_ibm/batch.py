"""
Runs independent scenarios in parallel worker processes.

Each scenario builds its own equilibrium state from its own params, so runs
share nothing mutable; params snapshots are frozen and safe to pass around.
"""
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional, Sequence

from tqdm.contrib.concurrent import process_map

from malaria_ibm.output import SimulationOutput
from malaria_ibm.simulation import Simulation
from malaria_ibm.state import Params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scenario:
    name: str
    params: Params
    init_eir: float


def run_scenario(scenario: Scenario, timesteps: int) -> SimulationOutput:
    simulation = Simulation.from_params(scenario.params, scenario.init_eir)
    return simulation.run(timesteps)


def run_scenarios(
    scenarios: Sequence[Scenario],
    timesteps: int,
    max_workers: Optional[int] = None,
    chunksize: int = 1,
    progress: bool = True,
) -> dict[str, SimulationOutput]:
    """
    Run every scenario for the same number of timesteps.

    Args:
        scenarios (Sequence[Scenario]): The scenarios, with unique names
        timesteps (int): Number of timesteps to run each scenario
        max_workers (Optional[int]): Number of worker processes, defaults to the cpu count
        chunksize (int): Scenarios sent to a worker at a time
        progress (bool): Show a progress bar

    Returns:
        dict[str, SimulationOutput]: The output of each scenario, by name
    """
    names = [scenario.name for scenario in scenarios]
    if len(set(names)) != len(names):
        raise ValueError(f"Scenario names must be unique, got {names}")
    logger.info("Running %d scenarios for %d timesteps", len(scenarios), timesteps)
    outputs = process_map(
        partial(run_scenario, timesteps=timesteps),
        scenarios,
        max_workers=max_workers,
        chunksize=chunksize,
        disable=not progress,
    )
    return dict(zip(names, outputs))
