import numpy as np

from malaria_ibm.schedule import InterventionSchedule
from malaria_ibm.state import Array, State, StepRecord
from malaria_ibm.state.derived_params import relative_biting

from .biting import calculate_biting
from .humans import advance_humans, human_infectivity
from .mosquitoes import advance_mosquitoes
from .treatment import update_nets


def advance_state(state: State, schedule: InterventionSchedule) -> None:
    """Advance the state forward one time step from t to t + 1"""
    people = state.people
    params = state._params
    derived = state.derived_params
    t = state.current_time
    ages_at_start = people.ages.copy()

    update_nets(people, schedule, t, state.numpy_bit_generator)
    modifiers = schedule.modifiers_at(t, people)

    biting = calculate_biting(
        relative_exposure=relative_biting(people.ages, params.humans) * people.zeta,
        infectivity=human_infectivity(people, derived),
        has_net=people.has_net,
        kill=modifiers.kill,
        repel=modifiers.repel,
        infectious_mosquitoes=state.mosquitoes.Im,
        derived_params=derived,
    )

    events = advance_humans(
        people,
        eir=np.sum(biting.eir, axis=0),
        prophylaxis=modifiers.prophylaxis,
        treatment_coverage=modifiers.treatment_coverage,
        disease_params=params.disease,
        derived_params=derived,
        current_time=t,
        numpy_bit_gen=state.numpy_bit_generator,
    )

    advance_mosquitoes(
        state.mosquitoes,
        params.mosquito,
        death_rate=biting.death_rate,
        force_of_infection=biting.mosquito_foi,
        eip_prob=derived.eip_prob,
    )

    people.ages += 1
    people_to_die: Array.Person.Bool = np.logical_or(
        state.numpy_bit_generator.uniform(low=0, high=1, size=state.n_people)
        < derived.death_prob,
        people.ages >= params.humans.max_human_age,
    )
    people.process_deaths(
        people_to_die, params.humans.sigma_squared, state.numpy_bit_generator
    )

    state.last_step = StepRecord(
        ages=ages_at_start,
        infected=events.infected,
        clinical=events.clinical,
        treated=events.treated,
        eir=biting.total_eir,
        death_rate=biting.death_rate,
        protected=biting.protected,
    )
    state.current_time += 1
