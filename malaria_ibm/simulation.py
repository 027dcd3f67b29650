import copy
import logging
from pathlib import Path
from typing import IO, Callable, Iterator, Optional

from tqdm import tqdm

from malaria_ibm.advance import advance_state
from malaria_ibm.equilibrium import set_equilibrium
from malaria_ibm.errors import SimulationCancelled, ValidationError, Violation
from malaria_ibm.output import OutputAggregator, SimulationOutput
from malaria_ibm.schedule import InterventionSchedule
from malaria_ibm.state import Params, State

logger = logging.getLogger(__name__)


def _check_timesteps(timesteps: int) -> None:
    if timesteps < 0:
        raise ValidationError(
            [
                Violation(
                    "timesteps",
                    "number of timesteps cannot be negative",
                    expected=">= 0",
                    actual=timesteps,
                )
            ]
        )


class Simulation:
    """
    Owns one state and runs it forward, one timestep at a time.

    Successive calls to `run` continue from where the previous one stopped.
    The state can be checkpointed between timesteps with `save` and picked
    up again with `Simulation.restore`.
    """

    state: State
    verbose: bool

    def __init__(self, state: State, verbose: bool = False) -> None:
        self.state = state
        self.verbose = verbose

    @classmethod
    def from_params(
        cls, params: Params, init_eir: float, verbose: bool = False
    ) -> "Simulation":
        return cls(set_equilibrium(params, init_eir), verbose=verbose)

    @property
    def current_time(self) -> int:
        return self.state.current_time

    def _prepare(self, timesteps: int) -> tuple[InterventionSchedule, OutputAggregator]:
        _check_timesteps(timesteps)
        schedule = InterventionSchedule.from_params(self.state._params)
        aggregator = OutputAggregator(self.state._params)
        return schedule, aggregator

    def _steps(self, timesteps: int) -> Iterator[int]:
        start = self.state.current_time
        steps = range(start, start + timesteps)
        if self.verbose:
            return iter(tqdm(steps, desc="Timesteps"))
        return iter(steps)

    def run(
        self, timesteps: int, cancel: Optional[Callable[[], bool]] = None
    ) -> SimulationOutput:
        """Run the simulation for a number of timesteps.

        Args:
            timesteps (int): Number of timesteps to run
            cancel (Optional[Callable[[], bool]]): Checked before each timestep;
                when it returns True the run stops

        Raises:
            ValidationError: If timesteps is negative
            ScheduleError: If intervention events are out of order
            SchemaError: If requested output columns are not defined
            SimulationCancelled: If cancel returned True. No output is
                returned, but the state keeps the timesteps already run.

        Returns:
            SimulationOutput: One row per timestep run
        """
        schedule, aggregator = self._prepare(timesteps)
        output = SimulationOutput(aggregator.columns)
        logger.info(
            "Running %d timesteps from timestep %d", timesteps, self.current_time
        )
        for t in self._steps(timesteps):
            if cancel is not None and cancel():
                logger.info("Simulation cancelled before timestep %d", t)
                raise SimulationCancelled(t)
            advance_state(self.state, schedule)
            output.append(aggregator.aggregate(self.state, t))
        logger.info("Finished at timestep %d", self.current_time)
        return output.finalise()

    def iter_run(self, timesteps: int, sampling_interval: int = 1) -> Iterator[State]:
        """Run the simulation, yielding the state every `sampling_interval` timesteps.

        The state yielded is the live state of the simulation, not a copy.
        """
        if sampling_interval < 1:
            raise ValidationError(
                [
                    Violation(
                        "sampling_interval",
                        "sampling interval must be at least 1",
                        expected=">= 1",
                        actual=sampling_interval,
                    )
                ]
            )
        schedule, _ = self._prepare(timesteps)
        start = self.state.current_time
        for t in self._steps(timesteps):
            advance_state(self.state, schedule)
            if (t + 1 - start) % sampling_interval == 0:
                yield self.state

    def save(self, output: str | Path | IO[bytes]) -> None:
        self.state.to_hdf5(output)

    @classmethod
    def restore(
        cls, input: str | Path | IO[bytes], verbose: bool = False
    ) -> "Simulation":
        return cls(State.from_hdf5(input), verbose=verbose)


def run_simulation(timesteps: int, state: State) -> SimulationOutput:
    """
    Run a copy of an initialised state for a number of timesteps.

    The state passed in is left untouched, so running twice from the same
    state gives identical output.
    """
    return Simulation(copy.deepcopy(state)).run(timesteps)
