"""
Builds the steady state of the model, with no interventions, for a target
entomological inoculation rate (EIR).

The human side follows a birth cohort through the same daily update the
simulation applies to each person. Every day susceptible and subpatent people
are infected with a probability set by their EIR and pre-erythrocytic
immunity, people in other states progress, and immunity decays and is boosted
by one for each new infection. The cohort is followed separately for each
biting heterogeneity, keeping the proportion in each infection state and the
immunity held by the people in each state, so people sampled from it are at
steady state under the rules of the simulation itself.

Mosquito compartments are then set to reproduce the target EIR, with the
larval carrying capacity of each species found by `brentq`.
"""
import logging
from dataclasses import dataclass

import numpy as np
from numpy.random import SFC64, Generator
from scipy.optimize import brentq

from malaria_ibm.advance.mosquitoes import advance_mosquitoes
from malaria_ibm.errors import ConvergenceError, ValidationError, Violation
from malaria_ibm.state import (
    Array,
    EquilibriumSummary,
    HumanState,
    Mosquitoes,
    People,
    State,
)
from malaria_ibm.state.derived_params import (
    DerivedParams,
    clinical_probability,
    heterogeneity_nodes,
    infection_probability,
    larval_rates,
    relative_biting,
)
from malaria_ibm.state.params import (
    DiseaseParams,
    MosquitoParams,
    Params,
    collect_violations,
)
from malaria_ibm.state.people import draw_zeta, truncated_geometric
from malaria_ibm.utils import rate_to_prob

logger = logging.getLogger(__name__)

# S, E, D, A, U: nobody is under treatment at equilibrium
N_EQUILIBRIUM_STATES = 5
_MAX_BRACKET_DOUBLINGS = 64

_S, _E, _D, _A, _U = (
    HumanState.S,
    HumanState.E,
    HumanState.D,
    HumanState.A,
    HumanState.U,
)
# offsets of the immunity blocks within a cohort row
_IB = N_EQUILIBRIUM_STATES
_ICA = 2 * N_EQUILIBRIUM_STATES


def age_grid(params: Params) -> Array.General.Int:
    """
    Ages (days) the cohort is recorded at: every day up to `daily_ages`,
    then every `age_block` days, ending at `max_human_age`.
    """
    max_age = params.humans.max_human_age
    daily = min(params.equilibrium.daily_ages, max_age)
    return np.unique(
        np.concatenate(
            [
                np.arange(daily),
                np.arange(daily, max_age, params.equilibrium.age_block),
                [max_age],
            ]
        )
    ).astype(int)


def age_weights(grid: Array.General.Int, survival: float) -> Array.General.Float:
    """
    Weight of each grid age in the steady state age distribution.

    With a daily survival probability `survival`, the proportion of people
    aged `a` days is proportional to `survival ** a`, for ages below the
    final grid age. The ages between two grid points are shared between them
    in proportion to their distance, as in linear interpolation.

    Args:
        grid (Array.General.Int): Increasing ages, starting at 0
        survival (float): Probability of surviving a day

    Returns:
        Array.General.Float: One weight per grid age, summing to 1
    """
    lower = grid[:-1]
    width = np.diff(grid)
    offset = np.arange(width.max())
    within = offset[None, :] < width[:, None]
    density = np.where(
        within, survival ** (lower[:, None] + offset[None, :]).astype(float), 0.0
    )
    towards_upper = offset[None, :] / width[:, None]
    weights = np.zeros(len(grid))
    weights[:-1] += np.sum(density * (1 - towards_upper), axis=1)
    weights[1:] += np.sum(density * towards_upper, axis=1)
    return weights / weights.sum()


def _per_state_mean(
    total: Array.General.Float, proportion: Array.General.Float
) -> Array.General.Float:
    return np.divide(
        total, proportion, out=np.zeros_like(total), where=proportion > 0
    )


def daily_transitions(
    cohort: Array.General.Float,
    hazard: Array.General.Float,
    disease: DiseaseParams,
    derived: DerivedParams,
) -> Array.General.Float:
    """
    One day of the human update, as a matrix acting on cohorts.

    A cohort is a row of 15 values: the proportion of people in S, E, D, A
    and U, then the pre-erythrocytic immunity (ib) summed over the people in
    each state, then the clinical immunity (ica) summed likewise. The
    cohort after the day is `cohort @ transitions`.

    Infection and clinical probabilities use the mean immunity of the people
    in each state at the start of the day.

    Args:
        cohort (Array.General.Float): zeta x 15 cohorts at the start of the day
        hazard (Array.General.Float): Infectious bites per person today, per cohort
        disease (DiseaseParams): The fixed parameters relating to infection
        derived (DerivedParams): The derived parameters of the model

    Returns:
        Array.General.Float: zeta x 15 x 15 transition matrices
    """
    proportion = cohort[:, :_IB]
    mean_ib = _per_state_mean(cohort[:, _IB:_ICA], proportion)
    mean_ica = _per_state_mean(cohort[:, _ICA:], proportion)
    infected_s = rate_to_prob(infection_probability(mean_ib[:, _S], disease) * hazard)
    infected_u = rate_to_prob(infection_probability(mean_ib[:, _U], disease) * hazard)
    clinical = clinical_probability(mean_ica[:, _E], disease)
    progress = derived.progression_probs

    P = np.zeros((len(cohort), N_EQUILIBRIUM_STATES, N_EQUILIBRIUM_STATES))
    P[:, _S, _S] = 1 - infected_s
    P[:, _S, _E] = infected_s
    P[:, _E, _E] = 1 - progress[_E]
    P[:, _E, _D] = progress[_E] * clinical
    P[:, _E, _A] = progress[_E] * (1 - clinical)
    P[:, _D, _D] = 1 - progress[_D]
    P[:, _D, _A] = progress[_D]
    P[:, _A, _A] = 1 - progress[_A]
    P[:, _A, _U] = progress[_A]
    P[:, _U, _E] = infected_u
    P[:, _U, _S] = (1 - infected_u) * progress[_U]
    P[:, _U, _U] = (1 - infected_u) * (1 - progress[_U])

    size = 3 * N_EQUILIBRIUM_STATES
    transitions = np.zeros((len(cohort), size, size))
    transitions[:, :_IB, :_IB] = P
    transitions[:, _IB:_ICA, _IB:_ICA] = derived.decay_ib * P
    transitions[:, _ICA:, _ICA:] = derived.decay_ica * P
    # each new infection adds one to both immunities
    for offset in (_IB, _ICA):
        transitions[:, _S, offset + _E] = infected_s
        transitions[:, _U, offset + _E] = infected_u
    return transitions


@dataclass
class CohortProfile:
    """
    A birth cohort at each grid age, for a set of biting heterogeneities.

    Arrays have shape (ages, zeta, S/E/D/A/U). `ib` and `ica` hold immunity
    summed over the people in each state, so `ib / states` is the mean
    immunity of the people in a state.
    """

    zeta: Array.General.Float
    states: Array.General.Float
    ib: Array.General.Float
    ica: Array.General.Float

    def columns(self, selection: slice) -> "CohortProfile":
        return CohortProfile(
            zeta=self.zeta[selection],
            states=self.states[:, selection],
            ib=self.ib[:, selection],
            ica=self.ica[:, selection],
        )


def follow_cohort(
    params: Params,
    derived: DerivedParams,
    grid: Array.General.Int,
    zeta: Array.General.Float,
    eir_day: float,
    mean_exposure: float,
) -> CohortProfile:
    """
    Follow newborns, susceptible and without immunity, through the grid ages.

    A person of age `a` and heterogeneity `zeta` receives
    `eir_day * psi(a) * zeta / mean_exposure` infectious bites a day. Between
    grid ages more than a day apart, the day at the middle of the gap is
    repeated.
    """
    cohort = np.zeros((len(zeta), 3 * N_EQUILIBRIUM_STATES))
    cohort[:, _S] = 1
    record = np.zeros((len(grid),) + cohort.shape)
    record[0] = cohort
    for i, (age, days) in enumerate(zip(grid[:-1], np.diff(grid))):
        psi = relative_biting(age + (days - 1) / 2, params.humans)
        hazard = eir_day * psi * zeta / mean_exposure
        transitions = daily_transitions(cohort, hazard, params.disease, derived)
        if days > 1:
            transitions = np.linalg.matrix_power(transitions, int(days))
        cohort = np.einsum("ki,kij->kj", cohort, transitions)
        record[i + 1] = cohort
    return CohortProfile(
        zeta=zeta,
        states=record[:, :, :_IB],
        ib=record[:, :, _IB:_ICA],
        ica=record[:, :, _ICA:],
    )


def mosquito_fractions(
    death_rate: float, force_of_infection: float, eip_prob: float
) -> tuple[float, float, float]:
    """Steady state proportions of adult females in Sm, Pm and Im, for daily updates"""
    survival = np.exp(-death_rate)
    infection_prob = 1 - np.exp(-force_of_infection)
    susceptible = (1 - survival) / (1 - survival * (1 - infection_prob))
    incubating = susceptible * survival * infection_prob / (1 - survival * (1 - eip_prob))
    infectious = incubating * survival * eip_prob / (1 - survival)
    return float(susceptible), float(incubating), float(infectious)


def _larval_balance(
    density_ratio: float, mosquito_params: MosquitoParams, adult_survival: float
) -> float:
    rate_e, rate_l, rate_p = larval_rates(mosquito_params, density_ratio)
    replacement = (
        0.5
        * mosquito_params.beta
        / (
            mosquito_params.del_el
            * mosquito_params.del_ll
            * mosquito_params.del_pl
            * rate_e
            * rate_l
            * rate_p
        )
    )
    return replacement - (1 - adult_survival)


def _root(
    f, lower: float, upper: float, max_iterations: int, what: str
) -> tuple[float, int]:
    try:
        root, result = brentq(
            f,
            lower,
            upper,
            xtol=1e-15,
            rtol=1e-12,
            maxiter=max_iterations,
            full_output=True,
            disp=False,
        )
    except ValueError as e:
        raise ConvergenceError(f"Could not bracket the {what}: {e}") from None
    if not result.converged:
        raise ConvergenceError(
            f"Root finding for the {what} did not converge",
            iterations=result.iterations,
            residual=abs(f(root)),
        )
    logger.debug(
        "Found %s %.6g in %d iterations", what, root, result.iterations
    )
    return root, result.iterations


@dataclass
class LarvalSteadyState:
    early: float
    late: float
    pupae: float
    K0: float
    iterations: int  # of the root find on the larval density


def larval_compartments(
    adults: float,
    mosquito_params: MosquitoParams,
    adult_death_rate: float,
    max_iterations: int,
    species_index: int = 0,
) -> LarvalSteadyState:
    """Steady state aquatic stages supporting a given number of adult females"""
    survival = float(np.exp(-adult_death_rate))
    if _larval_balance(0.0, mosquito_params, survival) <= 0:
        raise ValidationError(
            [
                Violation(
                    f"species[{species_index}].mum",
                    "adult deaths outpace the emergence of new adults "
                    "even without larval competition",
                    actual=adult_death_rate,
                )
            ]
        )
    if adults == 0:
        return LarvalSteadyState(0.0, 0.0, 0.0, 0.0, 0)

    upper = 1.0
    for _ in range(_MAX_BRACKET_DOUBLINGS):
        if _larval_balance(upper, mosquito_params, survival) < 0:
            break
        upper *= 2
    density_ratio, iterations = _root(
        lambda x: _larval_balance(x, mosquito_params, survival),
        0.0,
        upper,
        max_iterations,
        "larval density",
    )
    rate_e, rate_l, rate_p = larval_rates(mosquito_params, density_ratio)
    eggs = mosquito_params.beta * adults
    early = eggs / (1 - np.exp(-rate_e))
    late = eggs / (mosquito_params.del_el * rate_e) / (1 - np.exp(-rate_l))
    pupae = (
        eggs
        / (mosquito_params.del_el * rate_e * mosquito_params.del_ll * rate_l)
        / (1 - np.exp(-rate_p))
    )
    return LarvalSteadyState(
        early=float(early),
        late=float(late),
        pupae=float(pupae),
        K0=float((early + late) / density_ratio),
        iterations=iterations,
    )


@dataclass
class EquilibriumSolution:
    """
    The steady state for a target EIR.

    `population` holds the cohort at the Gauss-Hermite heterogeneity nodes,
    used for population averages; `sampling` holds it on a finer grid of
    heterogeneity, used to draw people.
    """

    init_eir: float
    force_of_infection: float
    mean_infection_probability: float
    human_infectivity: float
    iterations: int
    residual: float
    ages: Array.General.Int
    age_weights: Array.General.Float
    het_weights: Array.General.Float
    mean_exposure: float
    population: CohortProfile
    sampling: CohortProfile
    mosquitoes_per_human: float
    mosquito_infection_rate: Array.Species.Float
    mosquitoes: Mosquitoes

    @property
    def group_weights(self) -> Array.General.Float:
        return np.outer(self.age_weights, self.het_weights)

    def compartment_proportions(self) -> Array.General.Float:
        """Population-wide proportion of people in S, E, D, A and U"""
        return np.einsum("kj,kjs->s", self.group_weights, self.population.states)

    def mean_immunity(self) -> tuple[float, float]:
        """Population-wide mean ib and ica"""
        weights = self.group_weights
        return (
            float(np.einsum("kj,kjs->", weights, self.population.ib)),
            float(np.einsum("kj,kjs->", weights, self.population.ica)),
        )

    def summary(self) -> EquilibriumSummary:
        return EquilibriumSummary(
            init_eir=self.init_eir,
            force_of_infection=self.force_of_infection,
            mean_infection_probability=self.mean_infection_probability,
            human_infectivity=self.human_infectivity,
            mosquitoes_per_human=self.mosquitoes_per_human,
            iterations=self.iterations,
            residual=self.residual,
        )


def _check_init_eir(params: Params, init_eir: float) -> None:
    violations = collect_violations(params)
    if not np.isfinite(init_eir) or init_eir <= 0:
        violations.append(
            Violation(
                "init_eir",
                "initial EIR must be a positive, finite number",
                expected="> 0",
                actual=init_eir,
            )
        )
    if violations:
        raise ValidationError(violations)


def _sampling_zeta(params: Params) -> Array.General.Float:
    sigma_squared = params.humans.sigma_squared
    width = params.equilibrium.zeta_grid_width
    normal = np.linspace(-width, width, params.equilibrium.zeta_grid_points)
    return np.exp(-sigma_squared / 2 + np.sqrt(sigma_squared) * normal)


def solve_equilibrium(params: Params, init_eir: float) -> EquilibriumSolution:
    """
    Solve the steady state of the model for a target annual EIR.

    Args:
        params (Params): A set of fixed parameters for controlling the model
        init_eir (float): Target infectious bites per person per year

    Raises:
        ValidationError: If the params or init_eir are invalid
        ConvergenceError: If the larval root find fails, or the built state
            does not reproduce the target EIR within the tolerance

    Returns:
        EquilibriumSolution: The steady state
    """
    _check_init_eir(params, init_eir)
    humans = params.humans
    disease = params.disease
    tolerance = params.equilibrium.tolerance
    max_iterations = params.equilibrium.max_iterations
    if disease.b0 == 0:
        raise ConvergenceError("No equilibrium with infection: b0 is 0")

    derived = DerivedParams(params)
    eir_day = init_eir / params.year_length_days
    ages = age_grid(params)
    weights = age_weights(ages, 1 - derived.death_prob)
    het_zeta, het_weights = heterogeneity_nodes(
        humans.n_heterogeneity_groups, humans.sigma_squared
    )
    psi = relative_biting(ages.astype(float), humans)
    mean_exposure = float(np.sum(weights * psi) * np.sum(het_weights * het_zeta))

    n_nodes = len(het_zeta)
    cohorts = follow_cohort(
        params,
        derived,
        ages,
        np.concatenate([het_zeta, _sampling_zeta(params)]),
        eir_day,
        mean_exposure,
    )
    population = cohorts.columns(slice(None, n_nodes))
    sampling = cohorts.columns(slice(n_nodes, None))

    group_weights = np.outer(weights, het_weights)
    exposure = np.outer(psi, het_zeta) / mean_exposure
    infectivity = derived.infectivity[:N_EQUILIBRIUM_STATES]
    human_infectivity = float(
        np.einsum(
            "kj,kj,kjs,s->", group_weights, exposure, population.states, infectivity
        )
    )
    bite_infects = population.states * infection_probability(
        _per_state_mean(population.ib, population.states), disease
    )
    mean_infection_prob = float(
        np.einsum("kj,kj,kjs->", group_weights, exposure, bite_infects)
        / np.sum(group_weights * exposure)
    )
    logger.debug(
        "Human steady state for EIR %.4g: infectivity %.4g, "
        "mean infection probability %.4g",
        init_eir,
        human_infectivity,
        mean_infection_prob,
    )

    biting_rate = derived.baseline_biting_rate
    mosquito_infection_rate = biting_rate * human_infectivity
    fractions = np.array(
        [
            mosquito_fractions(
                derived.mum[i], mosquito_infection_rate[i], derived.eip_prob
            )
            for i in range(params.n_species)
        ]
    )
    proportions = np.array(params.species_proportions)
    bites_per_mosquito = float(np.sum(proportions * biting_rate * fractions[:, 2]))
    if bites_per_mosquito <= 0:
        raise ConvergenceError(
            "Humans at equilibrium do not infect mosquitoes, so no EIR can be sustained"
        )
    mosquitoes_per_human = eir_day / bites_per_mosquito
    adults = mosquitoes_per_human * proportions * humans.human_population

    larvae = [
        larval_compartments(
            adults[i], params.mosquito, derived.mum[i], max_iterations, i
        )
        for i in range(params.n_species)
    ]
    mosquitoes = Mosquitoes(
        E=np.array([larval.early for larval in larvae]),
        L=np.array([larval.late for larval in larvae]),
        P=np.array([larval.pupae for larval in larvae]),
        Sm=adults * fractions[:, 0],
        Pm=adults * fractions[:, 1],
        Im=adults * fractions[:, 2],
        K0=np.array([larval.K0 for larval in larvae]),
    )
    residual = _verify_mosquitoes(
        mosquitoes, params, derived, mosquito_infection_rate, eir_day, tolerance
    )

    return EquilibriumSolution(
        init_eir=init_eir,
        force_of_infection=eir_day * mean_infection_prob,
        mean_infection_probability=mean_infection_prob,
        human_infectivity=human_infectivity,
        iterations=max(larval.iterations for larval in larvae),
        residual=residual,
        ages=ages,
        age_weights=weights,
        het_weights=het_weights,
        mean_exposure=mean_exposure,
        population=population,
        sampling=sampling,
        mosquitoes_per_human=mosquitoes_per_human,
        mosquito_infection_rate=mosquito_infection_rate,
        mosquitoes=mosquitoes,
    )


def _verify_mosquitoes(
    mosquitoes: Mosquitoes,
    params: Params,
    derived: DerivedParams,
    mosquito_infection_rate: Array.Species.Float,
    eir_day: float,
    tolerance: float,
) -> float:
    """
    Recompute the EIR from the built compartments, and step them forward a day.

    Returns:
        float: Relative error of the recomputed EIR
    """
    n_people = params.humans.human_population
    eir = float(np.sum(derived.baseline_biting_rate * mosquitoes.Im)) / n_people
    eir_error = abs(eir - eir_day) / eir_day
    if eir_error > tolerance:
        raise ConvergenceError(
            "Mosquito compartments do not reproduce the target EIR",
            residual=eir_error,
            tolerance=tolerance,
        )

    stepped = mosquitoes.copy()
    advance_mosquitoes(
        stepped,
        params.mosquito,
        derived.mum,
        mosquito_infection_rate,
        derived.eip_prob,
    )
    for name in ("E", "L", "P", "Sm", "Pm", "Im"):
        before = getattr(mosquitoes, name)
        after = getattr(stepped, name)
        scale = np.where(before > 0, before, 1.0)
        drift = float(np.max(np.abs(after - before) / scale))
        if drift > tolerance:
            raise ConvergenceError(
                f"Mosquito compartment {name} is not at steady state",
                residual=drift,
                tolerance=tolerance,
            )
    return eir_error


def _grid_position(
    values: Array.Person.Float, grid: Array.General.Float
) -> tuple[Array.Person.Int, Array.Person.Float]:
    """Index of the grid interval holding each value, and the distance along it"""
    position = np.interp(values, grid, np.arange(len(grid)))
    index = np.minimum(np.floor(position).astype(int), len(grid) - 2)
    return index, position - index


def _bilinear(
    values: Array.General.Float,
    i: Array.Person.Int,
    fi: Array.Person.Float,
    j: Array.Person.Int,
    fj: Array.Person.Float,
) -> Array.General.Float:
    return (
        values[i, j] * ((1 - fi) * (1 - fj))[:, None]
        + values[i + 1, j] * (fi * (1 - fj))[:, None]
        + values[i, j + 1] * ((1 - fi) * fj)[:, None]
        + values[i + 1, j + 1] * (fi * fj)[:, None]
    )


def sample_people(
    solution: EquilibriumSolution, params: Params, generator: Generator
) -> People:
    """
    Draw people from the steady state.

    Ages follow the steady state of the simulation's daily deaths. Each
    person's infection state is drawn from the cohort at their age and
    biting heterogeneity, interpolated between grid points, and their
    immunity is the mean immunity of that state there.
    """
    humans = params.humans
    n_people = humans.human_population
    ages = truncated_geometric(
        N=n_people,
        prob=rate_to_prob(1 / humans.average_age),
        maximum=humans.max_human_age,
        people_generator=generator,
    )
    zeta = draw_zeta(n_people, humans.sigma_squared, generator)

    profile = solution.sampling
    i, fi = _grid_position(ages.astype(float), solution.ages.astype(float))
    j, fj = _grid_position(np.log(zeta), np.log(profile.zeta))
    state_probs = _bilinear(profile.states, i, fi, j, fj)
    ib_total = _bilinear(profile.ib, i, fi, j, fj)
    ica_total = _bilinear(profile.ica, i, fi, j, fj)

    cumulative = np.cumsum(state_probs, axis=1)
    cumulative /= cumulative[:, -1:]
    draws = generator.random(n_people)
    states = np.minimum(
        np.sum(draws[:, None] >= cumulative, axis=1), N_EQUILIBRIUM_STATES - 1
    )

    person = np.arange(n_people)
    in_state = state_probs[person, states]
    people = People.susceptible(ages, zeta)
    people.states = states.astype(int)
    people.ib = _per_state_mean(ib_total[person, states], in_state)
    people.ica = _per_state_mean(ica_total[person, states], in_state)
    return people


def set_equilibrium(params: Params, init_eir: float) -> State:
    """
    Build the initial state of a simulation, at steady state for a target EIR.

    Identical params (including the seed) and init_eir give identical states.

    Args:
        params (Params): A set of fixed parameters for controlling the model
        init_eir (float): Target infectious bites per person per year

    Returns:
        State: The state of the model at timestep 0
    """
    solution = solve_equilibrium(params, init_eir)
    generator = Generator(SFC64(params.seed))
    people = sample_people(solution, params, generator)
    state = State(
        people=people,
        mosquitoes=solution.mosquitoes,
        _params=params,
        equilibrium=solution.summary(),
        current_time=0,
    )
    state.numpy_bit_generator = generator
    logger.info(
        "Equilibrium set for EIR %.4g: %d people, %.4g mosquitoes per human",
        init_eir,
        state.n_people,
        solution.mosquitoes_per_human,
    )
    return state
