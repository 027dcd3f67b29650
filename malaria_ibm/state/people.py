from dataclasses import dataclass
from enum import IntEnum

import numpy as np
from numpy.random import Generator

from malaria_ibm.types import Array

from .hdf5 import ArrayDataclass


class HumanState(IntEnum):
    S = 0  # susceptible
    E = 1  # latent liver-stage infection
    D = 2  # clinical disease, untreated or failed treatment
    A = 3  # patent asymptomatic infection
    U = 4  # subpatent infection
    T = 5  # treated clinical disease


N_HUMAN_STATES = len(HumanState)


def draw_zeta(size: int, sigma_squared: float, generator: Generator) -> Array.Person.Float:
    """Individual biting heterogeneity, lognormal with mean 1"""
    return np.exp(
        generator.normal(-sigma_squared / 2, np.sqrt(sigma_squared), size=size)
    )


def truncated_geometric(
    N: int, prob: float, maximum: float, people_generator: Generator
) -> Array.Person.Int:
    output = np.repeat(maximum + 1, N)
    while np.any(output > maximum):
        output[output > maximum] = people_generator.geometric(
            p=prob, size=len(output[output > maximum])
        )
    return output.astype(int) - 1


@dataclass(eq=False)
class People(ArrayDataclass):
    """
    Every human in the simulation, held as one flat array per attribute.

    The time since a person's last net or drug is derived from net_time and
    drug_time, which are NaN when the person has no net or was never treated.
    """

    ages: Array.Person.Int
    states: Array.Person.Int
    zeta: Array.Person.Float
    ib: Array.Person.Float
    ica: Array.Person.Float
    net_time: Array.Person.Float
    net_event: Array.Person.Int
    drug: Array.Person.Int
    drug_time: Array.Person.Float

    def __len__(self):
        return len(self.ages)

    @classmethod
    def susceptible(
        cls, ages: Array.Person.Int, zeta: Array.Person.Float
    ) -> "People":
        n_people = len(ages)
        return cls(
            ages=ages.astype(int),
            states=np.full(n_people, HumanState.S, dtype=int),
            zeta=zeta,
            ib=np.zeros(n_people),
            ica=np.zeros(n_people),
            net_time=np.full(n_people, np.nan),
            net_event=np.full(n_people, -1, dtype=int),
            drug=np.full(n_people, -1, dtype=int),
            drug_time=np.full(n_people, np.nan),
        )

    @property
    def has_net(self) -> Array.Person.Bool:
        return ~np.isnan(self.net_time)

    def state_counts(self) -> Array.General.Int:
        return np.bincount(self.states, minlength=N_HUMAN_STATES)

    def in_age_band(self, age_start: int, age_end: int) -> Array.Person.Bool:
        return (self.ages >= age_start) & (self.ages < age_end)

    def process_deaths(
        self,
        people_to_die: Array.Person.Bool,
        sigma_squared: float,
        numpy_bit_gen: Generator,
    ) -> None:
        """Replace the people who die with susceptible newborns"""
        if (total_people_to_die := int(np.sum(people_to_die))) > 0:
            self.ages[people_to_die] = 0
            self.states[people_to_die] = HumanState.S
            self.zeta[people_to_die] = draw_zeta(
                total_people_to_die, sigma_squared, numpy_bit_gen
            )
            self.ib[people_to_die] = 0
            self.ica[people_to_die] = 0
            self.net_time[people_to_die] = np.nan
            self.net_event[people_to_die] = -1
            self.drug[people_to_die] = -1
            self.drug_time[people_to_die] = np.nan
