"""
Per-timestep summary table of a simulation.

Columns are fixed before the first timestep from the output params, and each
row is a pure function of the state after the step and the events of the
step. Column names use ages in days, e.g. `n_detect_730_3650`.
"""
import re
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional

import numpy as np
import pandas as pd

from malaria_ibm.errors import SchemaError
from malaria_ibm.state import HumanState, Params, State, StepRecord

Value = float | int
Extractor = Callable[[State, StepRecord], Value]

DETECTABLE_STATES = (HumanState.D, HumanState.A, HumanState.T)

# Name used in `<Compartment>_<species>_count` columns -> per species values
MOSQUITO_COMPARTMENTS: dict[str, Callable[[State, StepRecord], np.ndarray]] = {
    "Susceptible": lambda state, _: state.mosquitoes.Sm,
    "Incubating": lambda state, _: state.mosquitoes.Pm,
    "Infectious": lambda state, _: state.mosquitoes.Im,
    "Infected": lambda state, _: state.mosquitoes.infected,
    "Protected": lambda _, record: record.protected,
    "EarlyLarval": lambda state, _: state.mosquitoes.E,
    "LateLarval": lambda state, _: state.mosquitoes.L,
    "Pupal": lambda state, _: state.mosquitoes.P,
}
DEFAULT_MOSQUITO_COMPARTMENTS = (
    "Susceptible",
    "Incubating",
    "Infectious",
    "Infected",
    "Protected",
)

_STATE_BAND = re.compile(r"n_(S|E|D|A|U|T)_(\d+)_(\d+)")
_DETECT_BAND = re.compile(r"n_detect_(\d+)_(\d+)")
_INCIDENCE_BAND = re.compile(r"n_inc_clinical_(\d+)_(\d+)")
_AGE_BAND = re.compile(r"n_(\d+)_(\d+)")
_MOSQUITO_COUNT = re.compile(r"(\w+?)_(.+)_count")


def _species_value(
    compartment: Callable[[State, StepRecord], np.ndarray], species: int
) -> Extractor:
    return lambda state, record: float(compartment(state, record)[species])


def _in_band(ages: np.ndarray, lower: int, upper: int) -> np.ndarray:
    return (ages >= lower) & (ages < upper)


def _state_count(human_state: HumanState) -> Extractor:
    return lambda state, _: int(np.sum(state.people.states == human_state))


def _state_band_count(human_state: HumanState, lower: int, upper: int) -> Extractor:
    return lambda state, _: int(
        np.sum(
            (state.people.states == human_state)
            & _in_band(state.people.ages, lower, upper)
        )
    )


def _detect_count(lower: int, upper: int) -> Extractor:
    return lambda state, _: int(
        np.sum(
            np.isin(state.people.states, DETECTABLE_STATES)
            & _in_band(state.people.ages, lower, upper)
        )
    )


def _band_count(lower: int, upper: int) -> Extractor:
    return lambda state, _: int(np.sum(_in_band(state.people.ages, lower, upper)))


def _incidence_count(lower: int, upper: int) -> Extractor:
    return lambda _, record: int(
        np.sum(record.clinical & _in_band(record.ages, lower, upper))
    )


class OutputAggregator:
    """
    Reduces the state after each timestep to one row of the output table.
    """

    columns: tuple[str, ...]

    def __init__(self, params: Params) -> None:
        self._extractors: dict[str, Extractor] = {}
        for i, name in enumerate(params.species_names):
            for compartment in DEFAULT_MOSQUITO_COMPARTMENTS:
                self._extractors[f"{compartment}_{name}_count"] = _species_value(
                    MOSQUITO_COMPARTMENTS[compartment], i
                )
            self._extractors[f"total_M_{name}"] = _species_value(
                lambda state, _: state.mosquitoes.total_adults, i
            )
            self._extractors[f"EIR_{name}"] = _species_value(
                lambda _, record: record.eir, i
            )
            self._extractors[f"mu_{name}"] = _species_value(
                lambda _, record: record.death_rate, i
            )

        for human_state in HumanState:
            self._extractors[f"n_{human_state.name}"] = _state_count(human_state)
        self._extractors["n_infections"] = lambda _, record: int(
            np.sum(record.infected)
        )
        self._extractors["n_treated"] = lambda _, record: int(np.sum(record.treated))
        self._extractors["n_use_net"] = lambda state, _: int(
            np.sum(state.people.has_net)
        )

        for lower, upper in params.output.detect_age_bands:
            self._extractors[f"n_detect_{lower}_{upper}"] = _detect_count(lower, upper)
            self._extractors[f"n_{lower}_{upper}"] = _band_count(lower, upper)
        for lower, upper in params.output.clinical_incidence_age_bands:
            self._extractors[f"n_inc_clinical_{lower}_{upper}"] = _incidence_count(
                lower, upper
            )

        unknown = []
        species_index = {name: i for i, name in enumerate(params.species_names)}
        for column in params.output.extra_columns:
            if column in self._extractors:
                continue
            extractor = self._parse_extra_column(column, species_index)
            if extractor is None:
                unknown.append(column)
            else:
                self._extractors[column] = extractor
        if unknown:
            raise SchemaError(unknown)

        self.columns = ("timestep",) + tuple(self._extractors)

    @staticmethod
    def _parse_extra_column(
        column: str, species_index: dict[str, int]
    ) -> Optional[Extractor]:
        if match := _STATE_BAND.fullmatch(column):
            lower, upper = int(match[2]), int(match[3])
            if lower < upper:
                return _state_band_count(HumanState[match[1]], lower, upper)
        elif match := _DETECT_BAND.fullmatch(column):
            lower, upper = int(match[1]), int(match[2])
            if lower < upper:
                return _detect_count(lower, upper)
        elif match := _INCIDENCE_BAND.fullmatch(column):
            lower, upper = int(match[1]), int(match[2])
            if lower < upper:
                return _incidence_count(lower, upper)
        elif match := _AGE_BAND.fullmatch(column):
            lower, upper = int(match[1]), int(match[2])
            if lower < upper:
                return _band_count(lower, upper)
        elif match := _MOSQUITO_COUNT.fullmatch(column):
            compartment, species = match[1], match[2]
            if compartment in MOSQUITO_COMPARTMENTS and species in species_index:
                return _species_value(
                    MOSQUITO_COMPARTMENTS[compartment], species_index[species]
                )
        return None

    def aggregate(self, state: State, timestep: int) -> dict[str, Value]:
        record = state.last_step
        assert record is not None, "No timestep has been run"
        row: dict[str, Value] = {"timestep": timestep}
        for column, extractor in self._extractors.items():
            row[column] = extractor(state, record)
        return row


class SimulationOutput:
    """
    Append-only table with one row per timestep. Once finalised, rows can
    no longer be added.
    """

    def __init__(self, columns: tuple[str, ...]) -> None:
        self._columns = tuple(columns)
        self._rows: list[tuple[Value, ...]] = []
        self._finalised = False

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def finalised(self) -> bool:
        return self._finalised

    def append(self, row: Mapping[str, Value]) -> None:
        if self._finalised:
            raise RuntimeError("Cannot append to a finalised SimulationOutput")
        self._rows.append(tuple(row[column] for column in self._columns))

    def finalise(self) -> "SimulationOutput":
        self._finalised = True
        return self

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[dict[str, Value]]:
        for row in self._rows:
            yield dict(zip(self._columns, row))

    def __getitem__(self, index: int) -> dict[str, Value]:
        return dict(zip(self._columns, self._rows[index]))

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, SimulationOutput)
            and self._columns == other._columns
            and self._rows == other._rows
        )

    def column(self, name: str) -> np.ndarray:
        try:
            index = self._columns.index(name)
        except ValueError:
            raise KeyError(f"No output column named {name}") from None
        return np.array([row[index] for row in self._rows])

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self._rows, columns=list(self._columns))

    def to_csv(self, path: str | Path) -> None:
        self.to_dataframe().to_csv(path, index=False)
