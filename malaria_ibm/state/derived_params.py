from typing import overload

import numpy as np
from numpy.polynomial.hermite import hermgauss

from malaria_ibm.types import Array
from malaria_ibm.utils import rate_to_prob

from .params import DiseaseParams, HumanParams, MosquitoParams, Params


def heterogeneity_nodes(
    n_groups: int, sigma_squared: float
) -> tuple[Array.General.Float, Array.General.Float]:
    """
    Gauss-Hermite nodes for the lognormal biting heterogeneity, zeta.

    log(zeta) ~ Normal(-sigma^2 / 2, sigma^2), so that mean(zeta) = 1.

    Returns:
        tuple[Array.General.Float, Array.General.Float]: zeta at each node, weight of each node
    """
    nodes, weights = hermgauss(n_groups)
    zeta = np.exp(-sigma_squared / 2 + np.sqrt(2 * sigma_squared) * nodes)
    return zeta, weights / np.sqrt(np.pi)


@overload
def relative_biting(ages: float, humans: HumanParams) -> float:
    ...


@overload
def relative_biting(ages: Array.Person.Float, humans: HumanParams) -> Array.Person.Float:
    ...


def relative_biting(
    ages: float | Array.Person.Float, humans: HumanParams
) -> float | Array.Person.Float:
    """psi, the age-dependent biting attractiveness"""
    return 1 - humans.rho * np.exp(-ages / humans.a0)


def infection_probability(
    ib: float | Array.General.Float, disease: DiseaseParams
) -> float | Array.General.Float:
    """b, the probability an infectious bite gives an infection"""
    return disease.b0 * (
        disease.b1 + (1 - disease.b1) / (1 + (ib / disease.ib0) ** disease.kb)
    )


def clinical_probability(
    ica: float | Array.General.Float, disease: DiseaseParams
) -> float | Array.General.Float:
    """phi, the probability an infection becomes clinical"""
    return disease.phi0 * (
        disease.phi1 + (1 - disease.phi1) / (1 + (ica / disease.ic0) ** disease.kc)
    )


def larval_rates(
    mosquito_params: MosquitoParams, density_ratio: float | Array.General.Float
) -> tuple[float | Array.General.Float, float | Array.General.Float, float]:
    """Total exit rates of early larvae, late larvae and pupae at a given (E + L) / K"""
    rate_e = 1 / mosquito_params.del_el + mosquito_params.mue * (1 + density_ratio)
    rate_l = 1 / mosquito_params.del_ll + mosquito_params.mul * (
        1 + mosquito_params.gamma * density_ratio
    )
    rate_p = 1 / mosquito_params.del_pl + mosquito_params.mup
    return rate_e, rate_l, rate_p


class DerivedParams:
    """
    Per-timestep probabilities and arrays derived once from a set of params.
    """

    death_prob: float
    infectivity: Array.General.Float
    progression_probs: Array.General.Float
    decay_ib: float
    decay_ica: float
    het_zeta: Array.General.Float
    het_weights: Array.General.Float
    foraging_time: Array.Species.Float
    resting_time: Array.Species.Float
    Q0: Array.Species.Float
    phi_bednets: Array.Species.Float
    mum: Array.Species.Float
    blood_meal_rate: Array.Species.Float
    eip_prob: float
    drug_efficacy: Array.Drug.Float
    drug_rel_c: Array.Drug.Float
    drug_shape: Array.Drug.Float
    drug_scale: Array.Drug.Float

    def __init__(self, params: Params) -> None:
        humans = params.humans
        disease = params.disease
        self.death_prob = rate_to_prob(1 / humans.average_age)

        # Indexed by HumanState: S, E, D, A, U, T
        self.infectivity = np.array([0, 0, disease.cd, disease.ca, disease.cu, 0.0])
        self.progression_probs = rate_to_prob(
            1
            / np.array(
                [
                    np.inf,
                    disease.dur_E,
                    disease.dur_D,
                    disease.dur_A,
                    disease.dur_U,
                    disease.dur_T,
                ]
            )
        )
        self.decay_ib = float(np.exp(-1 / disease.dur_ib))
        self.decay_ica = float(np.exp(-1 / disease.dur_ica))

        self.het_zeta, self.het_weights = heterogeneity_nodes(
            humans.n_heterogeneity_groups, humans.sigma_squared
        )

        self.foraging_time = np.array([s.foraging_time for s in params.species])
        self.blood_meal_rate = np.array([s.blood_meal_rate for s in params.species])
        self.resting_time = 1 / self.blood_meal_rate - self.foraging_time
        self.Q0 = np.array([s.Q0 for s in params.species])
        self.phi_bednets = np.array([s.phi_bednets for s in params.species])
        self.mum = np.array([s.mum for s in params.species])
        self.eip_prob = rate_to_prob(1 / params.mosquito.eip)

        self.drug_efficacy = np.array([d.drug_efficacy for d in params.drugs])
        self.drug_rel_c = np.array([d.drug_rel_c for d in params.drugs])
        self.drug_shape = np.array([d.drug_prophylaxis_shape for d in params.drugs])
        self.drug_scale = np.array([d.drug_prophylaxis_scale for d in params.drugs])

    @property
    def baseline_biting_rate(self) -> Array.Species.Float:
        """Human biting rate per mosquito with no interventions"""
        return self.Q0 * self.blood_meal_rate
