from dataclasses import dataclass

import numpy as np
from numpy.random import Generator

from malaria_ibm.schedule import InterventionSchedule
from malaria_ibm.state import Array, People


@dataclass
class TreatmentGroup:
    """
    treated (Array.Person.Bool): An array stating if each person was treated this step
    drug (Array.General.Int): The drug given to each treated person
    successful (Array.General.Bool): Whether the drug cleared each treated person's infection
    """

    treated: Array.Person.Bool
    drug: Array.General.Int
    successful: Array.General.Bool


def treat_clinical_cases(
    clinical: Array.Person.Bool,
    treatment_coverage: Array.Drug.Float,
    drug_efficacy: Array.Drug.Float,
    numpy_bit_gen: Generator,
) -> TreatmentGroup:
    """
    Decides which new clinical cases are treated, with which drug, and whether
    the treatment works.

    A case is treated with probability equal to the summed coverage of all
    drugs; the drug is then chosen in proportion to each drug's coverage.

    Args:
        clinical (Array.Person.Bool): New clinical cases this step
        treatment_coverage (Array.Drug.Float): Coverage of each drug now
        drug_efficacy (Array.Drug.Float): Probability each drug clears infection
        numpy_bit_gen: (Generator): The random number generator for numpy

    Returns:
        TreatmentGroup: The people treated this step
    """
    total_coverage = float(np.sum(treatment_coverage))
    treated = np.zeros(len(clinical), dtype=bool)
    if total_coverage <= 0 or not np.any(clinical):
        return TreatmentGroup(
            treated=treated,
            drug=np.zeros(0, dtype=int),
            successful=np.zeros(0, dtype=bool),
        )

    clinical_idx = np.flatnonzero(clinical)
    treated[clinical_idx] = (
        numpy_bit_gen.uniform(low=0, high=1, size=len(clinical_idx)) < total_coverage
    )
    n_treated = int(np.sum(treated))
    drug = numpy_bit_gen.choice(
        len(treatment_coverage),
        size=n_treated,
        p=treatment_coverage / total_coverage,
    )
    successful = (
        numpy_bit_gen.uniform(low=0, high=1, size=n_treated) < drug_efficacy[drug]
    )
    return TreatmentGroup(treated=treated, drug=drug, successful=successful)


def update_nets(
    people: People,
    schedule: InterventionSchedule,
    current_time: int,
    numpy_bit_gen: Generator,
) -> None:
    """
    Net holders discard their nets at the retention rate, then each
    distribution scheduled for this timestep hands a new net to each person
    with probability equal to its coverage, restarting their net's decay.
    """
    holders = people.has_net
    if np.any(holders):
        holder_idx = np.flatnonzero(holders)
        lost = holder_idx[
            numpy_bit_gen.uniform(low=0, high=1, size=len(holder_idx))
            < schedule.net_loss_prob
        ]
        people.net_time[lost] = np.nan
        people.net_event[lost] = -1

    for event in schedule.bednet_events_at(current_time):
        coverage = schedule.bednet_coverages[event]
        if coverage <= 0:
            continue
        receives = (
            numpy_bit_gen.uniform(low=0, high=1, size=len(people)) < coverage
        )
        people.net_time[receives] = current_time
        people.net_event[receives] = event
