import pytest

from malaria_ibm import Scenario, apply_overrides, run_scenarios
from malaria_ibm.batch import run_scenario


def test_parallel_runs_match_sequential(small_params, bednet_params):
    scenarios = [
        Scenario("baseline", small_params, 8),
        Scenario("nets", apply_overrides(bednet_params, {"bednets.timesteps": [5, 10]}), 8),
        Scenario("high", apply_overrides(small_params, {"seed": 7}), 40),
    ]
    outputs = run_scenarios(scenarios, 20, max_workers=2, progress=False)
    assert list(outputs) == ["baseline", "nets", "high"]
    for scenario in scenarios:
        assert outputs[scenario.name] == run_scenario(scenario, 20)
    assert outputs["nets"].column("n_use_net")[-1] > 0


def test_duplicate_scenario_names(small_params):
    scenarios = [Scenario("a", small_params, 8), Scenario("a", small_params, 10)]
    with pytest.raises(ValueError, match="unique"):
        run_scenarios(scenarios, 5, progress=False)
