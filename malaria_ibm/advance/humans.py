from dataclasses import dataclass

import numpy as np
from numpy.random import Generator

from malaria_ibm.state import Array, DerivedParams, HumanState, People
from malaria_ibm.state.derived_params import clinical_probability, infection_probability
from malaria_ibm.state.params import DiseaseParams
from malaria_ibm.utils import rate_to_prob

from .treatment import treat_clinical_cases


@dataclass
class HumanEvents:
    infected: Array.Person.Bool
    clinical: Array.Person.Bool
    treated: Array.Person.Bool


def human_infectivity(
    people: People, derived_params: DerivedParams
) -> Array.Person.Float:
    """Probability a bite on each person infects a mosquito"""
    infectivity = derived_params.infectivity[people.states]
    under_treatment = people.states == HumanState.T
    if np.any(under_treatment):
        infectivity[under_treatment] = (
            derived_params.infectivity[HumanState.D]
            * derived_params.drug_rel_c[people.drug[under_treatment]]
        )
    return infectivity


def advance_humans(
    people: People,
    eir: Array.Person.Float,
    prophylaxis: Array.Person.Float,
    treatment_coverage: Array.Drug.Float,
    disease_params: DiseaseParams,
    derived_params: DerivedParams,
    current_time: int,
    numpy_bit_gen: Generator,
) -> HumanEvents:
    """
    Moves each person between infection states for one day.

    Susceptible (S) and subpatent (U) people are infected at a rate set by
    their EIR, their pre-erythrocytic immunity and any drug prophylaxis.
    Every other state progresses at the rate given by its mean duration.
    People leaving the latent stage become clinical cases with a probability
    set by their clinical immunity; clinical cases may be treated.

    Args:
        people (People): The people, updated in place
        eir (Array.Person.Float): Infectious bites on each person today, all species
        prophylaxis (Array.Person.Float): Remaining drug protection of each person
        treatment_coverage (Array.Drug.Float): Coverage of each drug now
        disease_params (DiseaseParams): The fixed parameters relating to infection
        derived_params (DerivedParams): The derived parameters of the model
        current_time (int): The current timestep
        numpy_bit_gen: (Generator): The random number generator for numpy

    Returns:
        HumanEvents: Who was infected, became a clinical case, or was treated
    """
    states = people.states
    n_people = len(people)
    draws = numpy_bit_gen.uniform(low=0, high=1, size=(3, n_people))

    can_be_infected = (states == HumanState.S) | (states == HumanState.U)
    infection_rate = (
        infection_probability(people.ib, disease_params) * eir * (1 - prophylaxis)
    )
    infected = can_be_infected & (draws[0] < rate_to_prob(infection_rate))
    progressing = ~infected & (draws[1] < derived_params.progression_probs[states])

    leaving_latent = progressing & (states == HumanState.E)
    clinical = leaving_latent & (
        draws[2] < clinical_probability(people.ica, disease_params)
    )
    treatment = treat_clinical_cases(
        clinical,
        treatment_coverage,
        derived_params.drug_efficacy,
        numpy_bit_gen,
    )

    new_states = states.copy()
    new_states[leaving_latent] = HumanState.A
    new_states[clinical] = HumanState.D
    treated_idx = np.flatnonzero(treatment.treated)
    new_states[treated_idx[treatment.successful]] = HumanState.T
    new_states[progressing & (states == HumanState.D)] = HumanState.A
    new_states[progressing & (states == HumanState.A)] = HumanState.U
    new_states[progressing & (states == HumanState.U)] = HumanState.S
    new_states[progressing & (states == HumanState.T)] = HumanState.S
    new_states[infected] = HumanState.E
    people.states = new_states

    people.drug[treated_idx] = treatment.drug
    people.drug_time[treated_idx] = current_time

    people.ib *= derived_params.decay_ib
    people.ica *= derived_params.decay_ica
    people.ib[infected] += 1
    people.ica[infected] += 1

    return HumanEvents(infected=infected, clinical=clinical, treated=treatment.treated)
