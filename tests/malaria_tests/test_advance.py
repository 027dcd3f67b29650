import numpy as np
import pytest
from numpy.random import SFC64, Generator

from malaria_ibm import (
    InterventionSchedule,
    load_default_parameters,
    set_bednets,
    set_equilibrium,
)
from malaria_ibm.advance.biting import calculate_biting
from malaria_ibm.advance.humans import advance_humans
from malaria_ibm.advance.mosquitoes import advance_adults
from malaria_ibm.advance.treatment import treat_clinical_cases, update_nets
from malaria_ibm.state import DerivedParams, HumanState, Mosquitoes, People


def _generator(seed: int = 0) -> Generator:
    return Generator(SFC64(seed))


def test_no_treatment_without_coverage():
    clinical = np.array([True, False, True])
    generator = _generator()
    state_before = generator.bit_generator.state["state"]["state"].copy()
    group = treat_clinical_cases(clinical, np.array([0.0]), np.array([0.9]), generator)
    assert not np.any(group.treated)
    assert len(group.drug) == 0
    assert np.array_equal(generator.bit_generator.state["state"]["state"], state_before)


def test_full_coverage_treats_every_case():
    clinical = np.array([True, False, True, True])
    group = treat_clinical_cases(
        clinical, np.array([0.5, 0.5]), np.array([1.0, 0.0]), _generator()
    )
    assert group.treated.tolist() == clinical.tolist()
    assert len(group.drug) == 3
    assert group.successful.tolist() == (group.drug == 0).tolist()


def test_treatment_only_of_clinical_cases():
    clinical = np.zeros(1000, dtype=bool)
    clinical[:500] = True
    group = treat_clinical_cases(
        clinical, np.array([0.4]), np.array([1.0]), _generator()
    )
    assert not np.any(group.treated[500:])
    assert 150 < np.sum(group.treated) < 250


def _people(n: int) -> People:
    return People.susceptible(np.full(n, 3650), np.ones(n))


def test_update_nets(bednet_params):
    schedule = InterventionSchedule.from_params(bednet_params)
    people = _people(1000)
    generator = _generator()

    update_nets(people, schedule, 100, generator)
    assert not np.any(people.has_net)

    update_nets(people, schedule, 365, generator)
    holders = people.has_net
    assert 400 < np.sum(holders) < 600
    assert np.all(people.net_time[holders] == 365)
    assert np.all(people.net_event[holders] == 0)
    assert np.all(people.net_event[~holders] == -1)


def test_nets_are_lost():
    params = set_bednets(
        load_default_parameters(),
        timesteps=[0],
        coverages=[1.0],
        retention=1,
        dn0=[[0.5]],
        rn=[[0.3]],
        rnm=[[0.2]],
        gamman=[900.0],
    )
    schedule = InterventionSchedule.from_params(params)
    people = _people(1000)
    generator = _generator()
    update_nets(people, schedule, 0, generator)
    assert np.all(people.has_net)
    for t in range(1, 20):
        update_nets(people, schedule, t, generator)
    assert not np.any(people.has_net)
    assert np.all(people.net_event == -1)


def _biting(params, has_net, kill, repel, n):
    derived = DerivedParams(params)
    return calculate_biting(
        relative_exposure=np.ones(n),
        infectivity=np.full(n, 0.1),
        has_net=has_net,
        kill=kill,
        repel=repel,
        infectious_mosquitoes=np.array([100.0]),
        derived_params=derived,
    )


def test_biting_without_nets():
    params = load_default_parameters()
    species = params.species[0]
    n = 10
    biting = _biting(
        params, np.zeros(n, dtype=bool), np.zeros((1, n)), np.zeros((1, n)), n
    )
    assert biting.death_rate.tolist() == [species.mum]
    assert biting.biting_rate[0] == pytest.approx(species.Q0 * species.blood_meal_rate)
    assert biting.eir.shape == (1, n)
    assert biting.total_eir[0] == pytest.approx(biting.biting_rate[0] * 100)
    assert biting.mosquito_foi[0] == pytest.approx(biting.biting_rate[0] * 0.1)
    assert biting.protected.tolist() == [0]


def test_nets_cut_biting_and_raise_death_rate():
    params = load_default_parameters()
    species = params.species[0]
    n = 10
    has_net = np.arange(n) < 5
    kill = np.where(has_net, 0.5, 0.0)[None, :]
    repel = np.where(has_net, 0.2, 0.0)[None, :]
    biting = _biting(params, has_net, kill, repel, n)

    assert biting.death_rate[0] > species.mum
    assert biting.biting_rate[0] < species.Q0 * species.blood_meal_rate
    assert biting.protected[0] == pytest.approx(5 * species.phi_bednets * 0.7)
    # people with nets receive fewer infectious bites
    assert np.all(biting.eir[0, :5] < biting.eir[0, 5:])
    assert biting.eir[0, :5] == pytest.approx(np.full(5, biting.eir[0, 0]))


def test_human_transitions(small_params):
    state = set_equilibrium(small_params, 8)
    people = state.people
    derived = state.derived_params
    n = len(people)
    people.states[:] = HumanState.S
    people.ib[:] = 0
    before_ib = people.ib.copy()

    events = advance_humans(
        people,
        eir=np.full(n, 100.0),
        prophylaxis=np.zeros(n),
        treatment_coverage=np.zeros(0),
        disease_params=small_params.disease,
        derived_params=derived,
        current_time=0,
        numpy_bit_gen=_generator(),
    )
    # infection is near certain at this EIR
    assert np.all(events.infected)
    assert np.all(people.states == HumanState.E)
    assert np.all(people.ib == before_ib * derived.decay_ib + 1)
    assert not np.any(events.clinical)


def test_prophylaxis_blocks_infection(small_params):
    state = set_equilibrium(small_params, 8)
    people = state.people
    n = len(people)
    people.states[:] = HumanState.S
    events = advance_humans(
        people,
        eir=np.full(n, 100.0),
        prophylaxis=np.ones(n),
        treatment_coverage=np.zeros(0),
        disease_params=small_params.disease,
        derived_params=state.derived_params,
        current_time=0,
        numpy_bit_gen=_generator(),
    )
    assert not np.any(events.infected)
    assert np.all(people.states == HumanState.S)


def test_adult_mosquitoes():
    mosquitoes = Mosquitoes(
        E=np.zeros(1),
        L=np.zeros(1),
        P=np.zeros(1),
        Sm=np.array([1000.0]),
        Pm=np.array([0.0]),
        Im=np.array([0.0]),
        K0=np.ones(1),
    )
    advance_adults(
        mosquitoes,
        death_rate=np.array([0.1]),
        force_of_infection=np.array([0.2]),
        eip_prob=0.1,
        emergence=np.array([50.0]),
    )
    survival = np.exp(-0.1)
    assert mosquitoes.total_adults[0] == pytest.approx(1000 * survival + 50)
    assert mosquitoes.Pm[0] == pytest.approx(1000 * survival * (1 - np.exp(-0.2)))
    assert mosquitoes.Im[0] == 0
