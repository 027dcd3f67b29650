import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

import h5py
import numpy as np
from numpy.random import SFC64, Generator
from pydantic import BaseModel

from malaria_ibm.types import Array

from .derived_params import DerivedParams
from .mosquitoes import Mosquitoes
from .params import Params
from .people import HumanState, People


class EquilibriumSummary(BaseModel):
    """Scalars describing the steady state a `State` was built from"""

    init_eir: float  # annual
    force_of_infection: float  # daily, per unit of relative exposure
    mean_infection_probability: float
    human_infectivity: float
    mosquitoes_per_human: float
    iterations: int
    residual: float


class StateStats(BaseModel):
    current_time: int
    mean_age: float
    mean_ib: float
    mean_ica: float
    net_usage: float
    prevalence: float
    total_mosquitoes: float
    infectious_mosquitoes: float


@dataclass
class StepRecord:
    """
    Events of the most recent timestep, kept for the output aggregator.

    Person arrays refer to the people as they were at the start of the step,
    ages included, so events are attributed to the age they happened at.
    """

    ages: Array.Person.Int
    infected: Array.Person.Bool
    clinical: Array.Person.Bool
    treated: Array.Person.Bool
    eir: Array.Species.Float  # infectious bites on all humans
    death_rate: Array.Species.Float
    protected: Array.Species.Float


def _generator_to_hdf5(generator: Generator, group: h5py.Group) -> None:
    bit_gen_state = generator.bit_generator.state
    group.create_dataset("state", data=bit_gen_state["state"]["state"])
    group.attrs["bit_generator"] = bit_gen_state["bit_generator"]
    group.attrs["has_uint32"] = bit_gen_state["has_uint32"]
    group.attrs["uinteger"] = bit_gen_state["uinteger"]


def _generator_from_hdf5(group: h5py.Group) -> Generator:
    generator = Generator(SFC64())
    generator.bit_generator.state = {
        "bit_generator": str(group.attrs["bit_generator"]),
        "state": {"state": np.array(group["state"], dtype=np.uint64)},
        "has_uint32": int(group.attrs["has_uint32"]),
        "uinteger": int(group.attrs["uinteger"]),
    }
    return generator


@dataclass
class State:
    people: People
    mosquitoes: Mosquitoes
    _params: Params
    equilibrium: Optional[EquilibriumSummary] = None
    current_time: int = 0
    last_step: Optional[StepRecord] = field(default=None, repr=False)
    derived_params: DerivedParams = field(init=False, repr=False)
    numpy_bit_generator: Generator = field(init=False, repr=False)

    def __post_init__(self):
        self.derived_params = DerivedParams(self._params)
        self.numpy_bit_generator = Generator(SFC64(self._params.seed))

    @property
    def n_people(self):
        """
        The number of people simulated.
        """
        return len(self.people)

    @property
    def params(self) -> Params:
        return self._params

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, State)
            and self.people == other.people
            and self.mosquitoes == other.mosquitoes
            and self._params == other._params
            and self.equilibrium == other.equilibrium
            and self.current_time == other.current_time
            and np.array_equal(
                self.numpy_bit_generator.bit_generator.state["state"]["state"],
                other.numpy_bit_generator.bit_generator.state["state"]["state"],
            )
        )

    def stats(self) -> StateStats:
        states = self.people.states
        return StateStats(
            current_time=self.current_time,
            mean_age=float(np.mean(self.people.ages)),
            mean_ib=float(np.mean(self.people.ib)),
            mean_ica=float(np.mean(self.people.ica)),
            net_usage=float(np.mean(self.people.has_net)),
            prevalence=float(
                np.mean(
                    (states == HumanState.D)
                    | (states == HumanState.A)
                    | (states == HumanState.T)
                )
            ),
            total_mosquitoes=float(np.sum(self.mosquitoes.total_adults)),
            infectious_mosquitoes=float(np.sum(self.mosquitoes.Im)),
        )

    def to_hdf5(self, output: str | Path | IO[bytes]) -> None:
        """Write a checkpoint of the state, taken between timesteps.

        Args:
            output (str | Path | IO[bytes]): File path or writable binary file object
        """
        with h5py.File(output, "w") as f:
            f.attrs["params"] = self._params.model_dump_json()
            f.attrs["current_time"] = self.current_time
            if self.equilibrium is not None:
                f.attrs["equilibrium"] = self.equilibrium.model_dump_json()
            self.people.to_hdf5_group(f.create_group("people"))
            self.mosquitoes.to_hdf5_group(f.create_group("mosquitoes"))
            _generator_to_hdf5(self.numpy_bit_generator, f.create_group("generator"))

    @classmethod
    def from_hdf5(cls, input: str | Path | IO[bytes]) -> "State":
        with h5py.File(input, "r") as f:
            equilibrium = None
            if "equilibrium" in f.attrs:
                equilibrium = EquilibriumSummary.model_validate(
                    json.loads(f.attrs["equilibrium"])
                )
            state = cls(
                people=People.from_hdf5_group(f["people"]),
                mosquitoes=Mosquitoes.from_hdf5_group(f["mosquitoes"]),
                _params=Params.model_validate(json.loads(f.attrs["params"])),
                equilibrium=equilibrium,
                current_time=int(f.attrs["current_time"]),
            )
            state.numpy_bit_generator = _generator_from_hdf5(f["generator"])
        return state


def make_state_from_hdf5(input_file: str | Path | IO[bytes]):
    return State.from_hdf5(input_file)
