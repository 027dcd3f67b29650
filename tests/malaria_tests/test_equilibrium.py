import numpy as np
import pytest

from malaria_ibm import (
    ARAB_PARAMS,
    FUN_PARAMS,
    GAMB_PARAMS,
    ConvergenceError,
    HumanState,
    Simulation,
    ValidationError,
    apply_overrides,
    load_default_parameters,
    set_equilibrium,
    set_species,
    solve_equilibrium,
)
from malaria_ibm.advance.mosquitoes import advance_mosquitoes
from malaria_ibm.equilibrium import age_grid, age_weights
from malaria_ibm.state import DerivedParams


def test_converges_for_default_params():
    params = load_default_parameters()
    solution = solve_equilibrium(params, 8)
    assert 0 < solution.iterations <= params.equilibrium.max_iterations
    assert solution.residual <= params.equilibrium.tolerance
    assert solution.force_of_infection > 0
    disease = params.disease
    assert (
        disease.b0 * disease.b1
        <= solution.mean_infection_probability
        <= disease.b0
    )


def test_compartment_proportions_sum_to_one():
    solution = solve_equilibrium(load_default_parameters(), 8)
    proportions = solution.compartment_proportions()
    assert proportions.sum() == pytest.approx(1, abs=1e-9)
    assert np.all(proportions >= 0)
    assert np.allclose(solution.population.states.sum(axis=2), 1)
    assert np.allclose(solution.sampling.states.sum(axis=2), 1)


def test_mosquitoes_reproduce_target_eir():
    params = load_default_parameters()
    solution = solve_equilibrium(params, 8)
    derived = DerivedParams(params)
    eir = (
        np.sum(derived.baseline_biting_rate * solution.mosquitoes.Im)
        / params.humans.human_population
        * params.year_length_days
    )
    assert eir == pytest.approx(8, rel=1e-6)


def test_multiple_species_reproduce_target_eir():
    params = set_species(
        load_default_parameters(), [GAMB_PARAMS, ARAB_PARAMS, FUN_PARAMS], [0.3, 0.5, 0.2]
    )
    solution = solve_equilibrium(params, 20)
    derived = DerivedParams(params)
    eir = (
        np.sum(derived.baseline_biting_rate * solution.mosquitoes.Im)
        / params.humans.human_population
        * params.year_length_days
    )
    assert eir == pytest.approx(20, rel=1e-6)
    adults = solution.mosquitoes.total_adults
    assert adults / adults.sum() == pytest.approx(np.array([0.3, 0.5, 0.2]))


def test_mosquitoes_at_steady_state():
    params = load_default_parameters()
    solution = solve_equilibrium(params, 8)
    derived = DerivedParams(params)
    stepped = solution.mosquitoes.copy()
    for _ in range(10):
        advance_mosquitoes(
            stepped,
            params.mosquito,
            derived.mum,
            solution.mosquito_infection_rate,
            derived.eip_prob,
        )
    for name in ("E", "L", "P", "Sm", "Pm", "Im"):
        assert getattr(stepped, name) == pytest.approx(
            getattr(solution.mosquitoes, name), rel=1e-6
        )


def test_higher_eir_means_fewer_susceptible():
    params = load_default_parameters()
    low = solve_equilibrium(params, 1).compartment_proportions()
    high = solve_equilibrium(params, 50).compartment_proportions()
    assert high[HumanState.S] < low[HumanState.S]


def test_set_equilibrium_is_idempotent(small_params):
    first = set_equilibrium(small_params, 8)
    second = set_equilibrium(small_params, 8)
    assert first == second
    assert first.equilibrium == second.equilibrium


def test_default_params_are_reproducible():
    params = load_default_parameters()
    assert set_equilibrium(params, 8) == set_equilibrium(params, 8)


def test_age_grid_and_weights():
    params = load_default_parameters()
    grid = age_grid(params)
    daily = params.equilibrium.daily_ages
    max_age = params.humans.max_human_age
    assert np.array_equal(grid[: daily + 1], np.arange(daily + 1))
    assert grid[-1] == max_age
    assert np.all(np.diff(grid) <= params.equilibrium.age_block)

    survival = 1 - DerivedParams(params).death_prob
    weights = age_weights(grid, survival)
    assert weights.sum() == pytest.approx(1)
    every_age = np.arange(max_age)
    density = survival ** every_age.astype(float)
    mean_age = np.sum(every_age * density) / np.sum(density)
    assert np.sum(weights * grid) == pytest.approx(mean_age, rel=1e-9)


def test_newborns_are_susceptible():
    solution = solve_equilibrium(load_default_parameters(), 8)
    for profile in (solution.population, solution.sampling):
        assert np.all(profile.states[0, :, HumanState.S] == 1)
        assert np.all(profile.ib[0] == 0)
        assert np.all(profile.ica[0] == 0)
    # immunity is gained with age
    mean_ib = np.einsum("kjs,j->k", solution.population.ib, solution.het_weights)
    assert mean_ib[-1] > mean_ib[365] > 0


def test_sampled_immunity_matches_steady_state():
    params = apply_overrides(
        load_default_parameters(), {"human_population": 5000, "seed": 3}
    )
    mean_ib, mean_ica = solve_equilibrium(params, 8).mean_immunity()
    stats = set_equilibrium(params, 8).stats()
    assert stats.mean_ib == pytest.approx(mean_ib, rel=0.05)
    assert stats.mean_ica == pytest.approx(mean_ica, rel=0.05)


def test_immunity_stays_at_steady_state_without_interventions():
    params = apply_overrides(
        load_default_parameters(), {"human_population": 5000, "seed": 3}
    )
    simulation = Simulation(set_equilibrium(params, 8))
    start = simulation.state.stats()
    simulation.run(5 * params.year_length_days)
    end = simulation.state.stats()
    assert end.mean_ib == pytest.approx(start.mean_ib, rel=0.05)
    assert end.mean_ica == pytest.approx(start.mean_ica, rel=0.05)


def test_sampled_people(small_params):
    state = set_equilibrium(small_params, 8)
    people = state.people
    humans = small_params.humans
    assert len(people) == humans.human_population
    assert np.all(people.ages >= 0)
    assert np.all(people.ages < humans.max_human_age)
    assert np.all(people.states <= HumanState.U)
    assert np.all(people.ib >= 0)
    assert np.all(np.isnan(people.net_time))
    assert np.all(people.drug == -1)
    assert state.current_time == 0
    assert state.equilibrium is not None
    assert state.equilibrium.init_eir == 8


def test_iteration_budget_exceeded():
    params = apply_overrides(load_default_parameters(), {"max_iterations": 1})
    with pytest.raises(ConvergenceError) as e:
        solve_equilibrium(params, 8)
    assert e.value.iterations is not None


@pytest.mark.parametrize("init_eir", [0, -1, float("nan")])
def test_invalid_init_eir(init_eir):
    with pytest.raises(ValidationError) as e:
        solve_equilibrium(load_default_parameters(), init_eir)
    assert e.value.fields == ["init_eir"]


def test_unsustainable_mosquito_population():
    params = apply_overrides(load_default_parameters(), {"beta": 0.001})
    with pytest.raises(ValidationError) as e:
        solve_equilibrium(params, 8)
    assert e.value.fields == ["species[0].mum"]
