import numpy as np
import pytest

from malaria_ibm import (
    FUN_PARAMS,
    GAMB_PARAMS,
    OutputAggregator,
    SchemaError,
    SimulationOutput,
    apply_overrides,
    run_simulation,
    set_equilibrium,
    set_species,
)


def test_append_and_read_rows():
    output = SimulationOutput(("timestep", "a", "b"))
    output.append({"timestep": 0, "a": 1, "b": 2.5})
    output.append({"b": 3.5, "a": 4, "timestep": 1})
    assert len(output) == 2
    assert output[1] == {"timestep": 1, "a": 4, "b": 3.5}
    assert list(output) == [
        {"timestep": 0, "a": 1, "b": 2.5},
        {"timestep": 1, "a": 4, "b": 3.5},
    ]
    assert output.column("b").tolist() == [2.5, 3.5]


def test_finalised_output_is_read_only():
    output = SimulationOutput(("timestep",))
    output.append({"timestep": 0})
    assert output.finalise() is output
    with pytest.raises(RuntimeError):
        output.append({"timestep": 1})
    assert len(output) == 1


def test_unknown_column_lookup():
    output = SimulationOutput(("timestep",))
    with pytest.raises(KeyError):
        output.column("n_S")


def test_to_dataframe_and_csv(tmp_path):
    output = SimulationOutput(("timestep", "a"))
    output.append({"timestep": 0, "a": 1})
    output.append({"timestep": 1, "a": 2})
    frame = output.to_dataframe()
    assert list(frame.columns) == ["timestep", "a"]
    assert frame["a"].tolist() == [1, 2]

    path = tmp_path / "output.csv"
    output.to_csv(path)
    assert path.read_text().splitlines() == ["timestep,a", "0,1", "1,2"]


def test_columns_per_species(small_params):
    params = set_species(small_params, [GAMB_PARAMS, FUN_PARAMS], [0.5, 0.5])
    columns = OutputAggregator(params).columns
    for name in ("gamb", "fun"):
        assert f"Infectious_{name}_count" in columns
        assert f"total_M_{name}" in columns
        assert f"EIR_{name}" in columns
    assert "EarlyLarval_gamb_count" not in columns


def test_extra_columns(small_params):
    extras = [
        "n_D_0_1825",
        "n_detect_0_36500",
        "n_inc_clinical_0_1825",
        "n_0_1825",
        "EarlyLarval_gamb_count",
        "LateLarval_gamb_count",
        "Pupal_gamb_count",
    ]
    params = apply_overrides(small_params, {"extra_columns": extras})
    state = set_equilibrium(params, 8)
    output = run_simulation(10, state)
    for column in extras:
        assert column in output.columns
    assert np.all(output.column("n_D_0_1825") <= output.column("n_0_1825"))
    assert np.all(
        output.column("n_detect_0_36500")
        == output.column("n_D") + output.column("n_A") + output.column("n_T")
    )
    assert np.all(output.column("Pupal_gamb_count") > 0)


def test_default_column_requested_again(small_params):
    params = apply_overrides(small_params, {"extra_columns": ["n_detect_730_3650"]})
    columns = OutputAggregator(params).columns
    assert columns.count("n_detect_730_3650") == 1


def test_unknown_columns(small_params):
    params = apply_overrides(
        small_params,
        {
            "extra_columns": [
                "Infectious_arab_count",
                "Dormant_gamb_count",
                "n_S_3650_730",
                "n_S_0_730",
            ]
        },
    )
    with pytest.raises(SchemaError) as e:
        OutputAggregator(params)
    assert e.value.unknown_columns == (
        "Infectious_arab_count",
        "Dormant_gamb_count",
        "n_S_3650_730",
    )
