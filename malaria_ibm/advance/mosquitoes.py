import numpy as np

from malaria_ibm.state import Array, Mosquitoes
from malaria_ibm.state.derived_params import larval_rates
from malaria_ibm.state.params import MosquitoParams


def advance_larvae(
    mosquitoes: Mosquitoes, mosquito_params: MosquitoParams
) -> Array.Species.Float:
    """
    Moves the aquatic stages on one day, with density dependent mortality in
    the larval stages.

    Eggs are laid by all adult females alive at the start of the day.

    Args:
        mosquitoes (Mosquitoes): The mosquito compartments, updated in place
        mosquito_params (MosquitoParams): The fixed parameters relating to mosquitoes

    Returns:
        Array.Species.Float: The number of adult females emerging from pupae
    """
    # species with no habitat (and so no larvae) have K0 == 0
    density_ratio = np.divide(
        mosquitoes.E + mosquitoes.L,
        mosquitoes.K0,
        out=np.zeros_like(mosquitoes.K0),
        where=mosquitoes.K0 > 0,
    )
    rate_e, rate_l, rate_p = larval_rates(mosquito_params, density_ratio)

    leaving_e = mosquitoes.E * (1 - np.exp(-rate_e))
    leaving_l = mosquitoes.L * (1 - np.exp(-rate_l))
    leaving_p = mosquitoes.P * (1 - np.exp(-rate_p))

    # share of each outflow that develops rather than dies
    developed_e = leaving_e * (1 / mosquito_params.del_el) / rate_e
    developed_l = leaving_l * (1 / mosquito_params.del_ll) / rate_l
    developed_p = leaving_p * (1 / mosquito_params.del_pl) / rate_p

    eggs = mosquito_params.beta * mosquitoes.total_adults
    mosquitoes.E = mosquitoes.E - leaving_e + eggs
    mosquitoes.L = mosquitoes.L - leaving_l + developed_e
    mosquitoes.P = mosquitoes.P - leaving_p + developed_l
    # half of the emerging adults are female
    return developed_p / 2


def advance_adults(
    mosquitoes: Mosquitoes,
    death_rate: Array.Species.Float,
    force_of_infection: Array.Species.Float,
    eip_prob: float,
    emergence: Array.Species.Float,
) -> None:
    """
    Moves adult females on one day: deaths, infection from biting humans and
    progression through the extrinsic incubation period.
    """
    survival = np.exp(-death_rate)
    infection_prob = 1 - np.exp(-force_of_infection)

    newly_infected = mosquitoes.Sm * survival * infection_prob
    newly_infectious = mosquitoes.Pm * survival * eip_prob

    mosquitoes.Sm = mosquitoes.Sm * survival * (1 - infection_prob) + emergence
    mosquitoes.Pm = mosquitoes.Pm * survival * (1 - eip_prob) + newly_infected
    mosquitoes.Im = mosquitoes.Im * survival + newly_infectious


def advance_mosquitoes(
    mosquitoes: Mosquitoes,
    mosquito_params: MosquitoParams,
    death_rate: Array.Species.Float,
    force_of_infection: Array.Species.Float,
    eip_prob: float,
) -> None:
    emergence = advance_larvae(mosquitoes, mosquito_params)
    advance_adults(mosquitoes, death_rate, force_of_infection, eip_prob, emergence)
