from dataclasses import dataclass

import numpy as np

from malaria_ibm.state import Array, DerivedParams


@dataclass
class BitingRates:
    """
    biting_rate (Array.Species.Float): Human bites per mosquito per day, a
    death_rate (Array.Species.Float): Adult mosquito death rate, mu
    eir (Array.Species.Person.Float): Infectious bites received by each person today
    mosquito_foi (Array.Species.Float): Force of infection on susceptible mosquitoes
    protected (Array.Species.Float): Expected number of humans protected by their net
    """

    biting_rate: Array.Species.Float
    death_rate: Array.Species.Float
    eir: Array.Species.Person.Float
    mosquito_foi: Array.Species.Float
    protected: Array.Species.Float

    @property
    def total_eir(self) -> Array.Species.Float:
        return np.sum(self.eir, axis=1)


def calculate_biting(
    relative_exposure: Array.Person.Float,
    infectivity: Array.Person.Float,
    has_net: Array.Person.Bool,
    kill: Array.Species.Person.Float,
    repel: Array.Species.Person.Float,
    infectious_mosquitoes: Array.Species.Float,
    derived_params: DerivedParams,
) -> BitingRates:
    """
    Feeding cycle model for each species, given the nets held by each person.

    A mosquito trying to feed on a person in bed under a net is killed with
    probability `kill`, repelled (and tries again) with probability `repel`,
    and otherwise feeds. Population averages over people, weighted by how
    attractive each person is to mosquitoes, set the length of the feeding
    cycle, the mosquito death rate and the proportion of bites on humans.

    Args:
        relative_exposure (Array.Person.Float): psi * zeta for each person
        infectivity (Array.Person.Float): Probability a bite on each person infects a mosquito
        has_net (Array.Person.Bool): Whether each person holds a net
        kill (Array.Species.Person.Float): Probability each person's net kills, by species
        repel (Array.Species.Person.Float): Probability each person's net repels, by species
        infectious_mosquitoes (Array.Species.Float): Im for each species
        derived_params (DerivedParams): The derived parameters of the model

    Returns:
        BitingRates: The rates for each species
    """
    phi_bednets = derived_params.phi_bednets[:, None]
    Q0 = derived_params.Q0
    total_exposure = np.sum(relative_exposure)

    if not np.any(has_net):
        biting_rate = derived_params.baseline_biting_rate
        death_rate = derived_params.mum
        successful_feed = np.ones_like(kill)
        protected = np.zeros(len(Q0))
    else:
        successful_feed = 1 - phi_bednets + phi_bednets * (1 - kill - repel)
        repelled = phi_bednets * repel
        W = 1 - Q0 + Q0 * np.sum(relative_exposure * successful_feed, axis=1) / (
            total_exposure
        )
        Z = Q0 * np.sum(relative_exposure * repelled, axis=1) / total_exposure

        foraging_time = derived_params.foraging_time
        resting_time = derived_params.resting_time
        feeding_rate = 1 / (foraging_time / (1 - Z) + resting_time)
        foraging_survival = np.exp(-derived_params.mum * foraging_time)
        survive_foraging = foraging_survival * W / (1 - Z * foraging_survival)
        survive_resting = np.exp(-derived_params.mum * resting_time)
        death_rate = -feeding_rate * np.log(survive_foraging * survive_resting)
        human_blood_index = 1 - (1 - Q0) / W
        biting_rate = human_blood_index * feeding_rate
        protected = np.sum(
            np.where(has_net, phi_bednets * (kill + repel), 0.0), axis=1
        )

    weighted_exposure = relative_exposure * successful_feed
    total_weighted = np.sum(weighted_exposure, axis=1)
    bites = biting_rate * infectious_mosquitoes
    return BitingRates(
        biting_rate=biting_rate,
        death_rate=death_rate,
        eir=bites[:, None] * weighted_exposure / total_weighted[:, None],
        mosquito_foi=biting_rate
        * np.sum(weighted_exposure * infectivity, axis=1)
        / total_weighted,
        protected=protected,
    )
