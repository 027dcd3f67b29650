import csv
from collections import defaultdict
from typing import Optional, Sequence

import pandas as pd

from malaria_ibm.output import SimulationOutput

Timestep = int
Measurement = str

Data = dict[tuple[Timestep, Measurement], float | int]


def add_output_to_run_data(
    output: SimulationOutput,
    run_data: Data,
    measurements: Optional[Sequence[str]] = None,
) -> None:
    """
    Adds the rows of one simulation output to the data of a run, keyed by
    timestep and measurement.

    Args:
        output (SimulationOutput): The output of a simulation
        run_data (Data): The run data to add to
        measurements (Optional[Sequence[str]]): The columns to add, all but timestep if None
    """
    if measurements is None:
        measurements = [c for c in output.columns if c != "timestep"]
    for row in output:
        for measurement in measurements:
            run_data[(int(row["timestep"]), measurement)] = row[measurement]


def flatten_and_sort(
    data: list[Data],
) -> list[tuple]:
    """
    Converts the outputs from multiple runs into a sorted 2d list, where each row represents a timestep, measure, and value for all runs.

    Args:
        data (list[Data]): The model output from multiple runs of the simulation.

    Returns:
        A 2D list, of type list[tuple[Timestep, Measurement, float | int, ...] where the value for each model run x is stored in columns after "Measurement"
    """
    data_combined_runs: dict[tuple[Timestep, Measurement], list[float | int]] = (
        defaultdict(list)
    )
    for run in data:
        for k, v in run.items():
            data_combined_runs[k].append(v)

    rows = sorted(
        (k + tuple(v) for k, v in data_combined_runs.items()),
        key=lambda r: (r[0], r[1]),
    )
    return rows


def _header(n_runs: int) -> list[str]:
    return ["timestep", "measure"] + [f"draw_{i}" for i in range(n_runs)]


def convert_data_to_pandas(
    data: list[Data],
) -> pd.DataFrame:
    rows = flatten_and_sort(data)
    return pd.DataFrame(rows, columns=_header(len(data)))


def write_data_to_csv(
    data: list[Data],
    csv_file: str,
) -> None:
    rows = flatten_and_sort(data)
    with open(csv_file, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(_header(len(data)))
        for row in rows:
            writer.writerow(row)
