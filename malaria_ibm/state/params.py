import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from malaria_ibm.errors import ScheduleError, ValidationError, Violation

PROPORTION_TOLERANCE = 1e-6


class BaseImmutableParams(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class SpeciesParams(BaseImmutableParams):
    species: str = "gamb"  # name used in output columns
    blood_meal_rate: float = Field(1 / 3, gt=0)  # 1 / gonotrophic cycle length (days)
    foraging_time: float = Field(0.69, gt=0)  # time spent looking for a blood meal (days)
    Q0: float = Field(0.92, ge=0, le=1)  # proportion of blood meals taken on humans
    phi_indoors: float = Field(0.97, ge=0, le=1)  # proportion of bites taken indoors
    phi_bednets: float = Field(0.85, ge=0, le=1)  # proportion of bites taken in bed
    mum: float = Field(0.132, gt=0)  # adult death rate per day, no interventions


class DrugParams(BaseImmutableParams):
    name: str
    drug_efficacy: float = Field(ge=0, le=1)  # probability treatment clears infection
    drug_rel_c: float = Field(ge=0)  # infectivity while treated, relative to clinical
    drug_prophylaxis_shape: float = Field(gt=0)
    drug_prophylaxis_scale: float = Field(gt=0)


class BednetParams(BaseImmutableParams):
    timesteps: tuple[int, ...]
    coverages: tuple[float, ...]
    retention: float  # mean days a net is kept
    dn0: tuple[tuple[float, ...], ...]  # species x event, kill probability
    rn: tuple[tuple[float, ...], ...]  # species x event, repel probability
    rnm: tuple[tuple[float, ...], ...]  # species x event, minimum repel probability
    gamman: tuple[float, ...]  # per event, half-life of insecticide (days)


class ClinicalTreatmentParams(BaseImmutableParams):
    drug_index: int
    timesteps: tuple[int, ...]
    coverages: tuple[float, ...]


class HumanParams(BaseImmutableParams):
    human_population: int = Field(1000, ge=1)
    average_age: float = Field(7663, gt=0)  # days, sets the death rate
    max_human_age: int = Field(36500, gt=0)  # days
    rho: float = Field(0.85, ge=0, lt=1)  # age-dependent biting parameter
    a0: float = Field(2920, gt=0)  # age-dependent biting parameter (days)
    sigma_squared: float = Field(1.67, gt=0)  # variance of log biting heterogeneity
    n_heterogeneity_groups: int = Field(5, ge=1)


class DiseaseParams(BaseImmutableParams):
    dur_E: float = Field(12, gt=0)  # latent liver stage
    dur_D: float = Field(5, gt=0)  # untreated clinical disease
    dur_A: float = Field(195, gt=0)  # patent asymptomatic infection
    dur_U: float = Field(110, gt=0)  # subpatent infection
    dur_T: float = Field(5, gt=0)  # treated clinical disease

    cd: float = Field(0.068, ge=0, le=1)  # infectivity of clinical disease
    ca: float = Field(0.0238, ge=0, le=1)  # infectivity of asymptomatic infection
    cu: float = Field(0.0062, ge=0, le=1)  # infectivity of subpatent infection

    # pre-erythrocytic immunity, boosted by each infection
    b0: float = Field(0.59, ge=0, le=1)
    b1: float = Field(0.5, gt=0, le=1)
    ib0: float = Field(43.9, gt=0)
    kb: float = Field(2.16, gt=0)
    dur_ib: float = Field(3650, gt=0)

    # clinical immunity, boosted by each infection
    phi0: float = Field(0.792, ge=0, le=1)
    phi1: float = Field(0.00074, ge=0, le=1)
    ic0: float = Field(18.02, gt=0)
    kc: float = Field(2.37, gt=0)
    dur_ica: float = Field(10950, gt=0)


class MosquitoParams(BaseImmutableParams):
    beta: float = Field(21.2, gt=0)  # eggs laid per female per day
    del_el: float = Field(6.64, gt=0)  # duration of early larval stage
    del_ll: float = Field(3.72, gt=0)  # duration of late larval stage
    del_pl: float = Field(0.643, gt=0)  # duration of pupal stage
    mue: float = Field(0.0338, ge=0)  # early larval death rate
    mul: float = Field(0.0348, ge=0)  # late larval death rate
    mup: float = Field(0.249, ge=0)  # pupal death rate
    gamma: float = Field(13.25, ge=0)  # relative density dependence of late larvae
    eip: float = Field(10, gt=0)  # extrinsic incubation period


class OutputParams(BaseImmutableParams):
    detect_age_bands: tuple[tuple[int, int], ...] = ((730, 3650),)
    clinical_incidence_age_bands: tuple[tuple[int, int], ...] = ()
    extra_columns: tuple[str, ...] = ()


class EquilibriumParams(BaseImmutableParams):
    tolerance: float = Field(1e-6, gt=0)  # relative tolerance on the EIR
    max_iterations: int = Field(100, ge=1)
    daily_ages: int = Field(730, ge=1)  # ages (days) followed one day at a time
    age_block: int = Field(10, ge=1)  # days per step beyond daily_ages
    zeta_grid_points: int = Field(41, ge=2)  # biting heterogeneity grid for sampling
    zeta_grid_width: float = Field(5.0, gt=0)  # grid half width, in standard deviations


GAMB_PARAMS = SpeciesParams(
    species="gamb", Q0=0.92, phi_indoors=0.97, phi_bednets=0.85, mum=0.132
)
ARAB_PARAMS = SpeciesParams(
    species="arab", Q0=0.71, phi_indoors=0.96, phi_bednets=0.8, mum=0.132
)
FUN_PARAMS = SpeciesParams(
    species="fun", Q0=0.94, phi_indoors=0.98, phi_bednets=0.79, mum=0.112
)

AL_PARAMS = DrugParams(
    name="AL",
    drug_efficacy=0.95,
    drug_rel_c=0.05094,
    drug_prophylaxis_shape=11.3,
    drug_prophylaxis_scale=10.6,
)
DHA_PQP_PARAMS = DrugParams(
    name="DHA_PQP",
    drug_efficacy=0.95,
    drug_rel_c=0.09434,
    drug_prophylaxis_shape=4.4,
    drug_prophylaxis_scale=28.1,
)
SP_AQ_PARAMS = DrugParams(
    name="SP_AQ",
    drug_efficacy=0.9,
    drug_rel_c=0.32,
    drug_prophylaxis_shape=4.3,
    drug_prophylaxis_scale=38.1,
)


class Params(BaseImmutableParams):
    seed: int = Field(0, ge=0)
    year_length_days: int = Field(365, gt=0)

    species: tuple[SpeciesParams, ...] = (GAMB_PARAMS,)
    species_proportions: tuple[float, ...] = (1.0,)
    drugs: tuple[DrugParams, ...] = ()
    bednets: Optional[BednetParams] = None
    clinical_treatment: tuple[ClinicalTreatmentParams, ...] = ()

    humans: HumanParams = HumanParams()
    disease: DiseaseParams = DiseaseParams()
    mosquito: MosquitoParams = MosquitoParams()
    output: OutputParams = OutputParams()
    equilibrium: EquilibriumParams = EquilibriumParams()

    @property
    def n_species(self) -> int:
        return len(self.species)

    @property
    def species_names(self) -> list[str]:
        return [s.species for s in self.species]


def _coverage_at(timesteps: tuple[int, ...], coverages: tuple[float, ...], t: int):
    current = 0.0
    for timestep, coverage in zip(timesteps, coverages):
        if timestep <= t:
            current = coverage
    return current


def _is_non_decreasing(timesteps: tuple[int, ...]) -> bool:
    return all(a <= b for a, b in zip(timesteps, timesteps[1:]))


def _check_matrix(
    name: str, matrix: tuple[tuple[float, ...], ...], n_rows: int, n_cols: int
) -> list[Violation]:
    violations = []
    if len(matrix) != n_rows:
        violations.append(
            Violation(
                f"bednets.{name}",
                "number of rows must match number of species",
                expected=n_rows,
                actual=len(matrix),
            )
        )
    for i, row in enumerate(matrix):
        if len(row) != n_cols:
            violations.append(
                Violation(
                    f"bednets.{name}[{i}]",
                    "number of columns must match number of timesteps",
                    expected=n_cols,
                    actual=len(row),
                )
            )
        for j, value in enumerate(row):
            if not 0 <= value <= 1:
                violations.append(
                    Violation(
                        f"bednets.{name}[{i}][{j}]",
                        "probability must lie in [0, 1]",
                        expected="0 <= value <= 1",
                        actual=value,
                    )
                )
    return violations


def _bednet_violations(bednets: BednetParams, n_species: int) -> list[Violation]:
    n_events = len(bednets.timesteps)
    violations = []
    for name, values in (("coverages", bednets.coverages), ("gamman", bednets.gamman)):
        if len(values) != n_events:
            violations.append(
                Violation(
                    f"bednets.{name}",
                    "length must match number of timesteps",
                    expected=n_events,
                    actual=len(values),
                )
            )
    for matrix_name in ("dn0", "rn", "rnm"):
        violations += _check_matrix(
            matrix_name, getattr(bednets, matrix_name), n_species, n_events
        )
    for i, coverage in enumerate(bednets.coverages):
        if not 0 <= coverage <= 1:
            violations.append(
                Violation(
                    f"bednets.coverages[{i}]",
                    "coverage must lie in [0, 1]",
                    expected="0 <= coverage <= 1",
                    actual=coverage,
                )
            )
    for i, half_life in enumerate(bednets.gamman):
        if not math.isfinite(half_life) or half_life <= 0:
            violations.append(
                Violation(
                    f"bednets.gamman[{i}]",
                    "half-life must be positive",
                    expected="> 0",
                    actual=half_life,
                )
            )
    for i, timestep in enumerate(bednets.timesteps):
        if timestep < 0:
            violations.append(
                Violation(
                    f"bednets.timesteps[{i}]",
                    "timesteps cannot be negative",
                    expected=">= 0",
                    actual=timestep,
                )
            )
    if not math.isfinite(bednets.retention) or bednets.retention <= 0:
        violations.append(
            Violation(
                "bednets.retention",
                "retention must be positive",
                expected="> 0",
                actual=bednets.retention,
            )
        )
    if not violations:
        for i in range(n_species):
            for j in range(n_events):
                rn, rnm = bednets.rn[i][j], bednets.rnm[i][j]
                if rnm > rn:
                    violations.append(
                        Violation(
                            f"bednets.rnm[{i}][{j}]",
                            "minimum repel probability cannot exceed rn",
                            expected=f"<= {rn}",
                            actual=rnm,
                        )
                    )
    return violations


def _treatment_violations(params: Params) -> list[Violation]:
    violations = []
    seen = set()
    for i, treatment in enumerate(params.clinical_treatment):
        field = f"clinical_treatment[{i}]"
        if not 0 <= treatment.drug_index < len(params.drugs):
            violations.append(
                Violation(
                    f"{field}.drug_index",
                    "drug index must refer to a configured drug",
                    expected=f"0 <= index < {len(params.drugs)}",
                    actual=treatment.drug_index,
                )
            )
        if treatment.drug_index in seen:
            violations.append(
                Violation(
                    f"{field}.drug_index",
                    "each drug may only have one treatment timeline",
                    actual=treatment.drug_index,
                )
            )
        seen.add(treatment.drug_index)
        if len(treatment.coverages) != len(treatment.timesteps):
            violations.append(
                Violation(
                    f"{field}.coverages",
                    "length must match number of timesteps",
                    expected=len(treatment.timesteps),
                    actual=len(treatment.coverages),
                )
            )
        for j, coverage in enumerate(treatment.coverages):
            if not 0 <= coverage <= 1:
                violations.append(
                    Violation(
                        f"{field}.coverages[{j}]",
                        "coverage must lie in [0, 1]",
                        expected="0 <= coverage <= 1",
                        actual=coverage,
                    )
                )
        for j, timestep in enumerate(treatment.timesteps):
            if timestep < 0:
                violations.append(
                    Violation(
                        f"{field}.timesteps[{j}]",
                        "timesteps cannot be negative",
                        expected=">= 0",
                        actual=timestep,
                    )
                )

    timelines = params.clinical_treatment
    if not violations and all(_is_non_decreasing(t.timesteps) for t in timelines):
        all_times = sorted({time for t in timelines for time in t.timesteps})
        for time in all_times:
            total = sum(_coverage_at(t.timesteps, t.coverages, time) for t in timelines)
            if total > 1 + PROPORTION_TOLERANCE:
                violations.append(
                    Violation(
                        "clinical_treatment",
                        f"summed drug coverage at timestep {time} exceeds 1",
                        expected="<= 1",
                        actual=total,
                    )
                )
    return violations


def _age_band_violations(
    name: str, bands: tuple[tuple[int, int], ...]
) -> list[Violation]:
    return [
        Violation(
            f"output.{name}[{i}]",
            "age band must satisfy 0 <= lower < upper",
            expected="0 <= lower < upper",
            actual=band,
        )
        for i, band in enumerate(bands)
        if not 0 <= band[0] < band[1]
    ]


def collect_violations(params: Params) -> list[Violation]:
    """Cross-field constraints which can only be checked on a complete set of params"""
    violations = []
    n_species = params.n_species
    if n_species == 0:
        violations.append(
            Violation("species", "at least one species is required", ">= 1", 0)
        )
    if len(params.species_proportions) != n_species:
        violations.append(
            Violation(
                "species_proportions",
                "one proportion is required per species",
                expected=n_species,
                actual=len(params.species_proportions),
            )
        )
    total = math.fsum(params.species_proportions)
    if abs(total - 1) > PROPORTION_TOLERANCE:
        violations.append(
            Violation(
                "species_proportions",
                "proportions must sum to 1",
                expected=f"1 +/- {PROPORTION_TOLERANCE}",
                actual=total,
            )
        )
    for i, proportion in enumerate(params.species_proportions):
        if proportion < 0:
            violations.append(
                Violation(
                    f"species_proportions[{i}]",
                    "proportions cannot be negative",
                    expected=">= 0",
                    actual=proportion,
                )
            )
    names = params.species_names
    if len(set(names)) != len(names):
        violations.append(
            Violation("species", "species names must be unique", actual=names)
        )
    for i, species in enumerate(params.species):
        cycle = 1 / species.blood_meal_rate
        if species.foraging_time >= cycle:
            violations.append(
                Violation(
                    f"species[{i}].foraging_time",
                    "foraging must be shorter than the gonotrophic cycle",
                    expected=f"< {cycle}",
                    actual=species.foraging_time,
                )
            )

    if params.bednets is not None:
        violations += _bednet_violations(params.bednets, n_species)
    violations += _treatment_violations(params)

    violations += _age_band_violations("detect_age_bands", params.output.detect_age_bands)
    violations += _age_band_violations(
        "clinical_incidence_age_bands", params.output.clinical_incidence_age_bands
    )
    return violations


def collect_order_violations(params: Params) -> list[Violation]:
    violations = []
    if params.bednets is not None and not _is_non_decreasing(params.bednets.timesteps):
        violations.append(
            Violation(
                "bednets.timesteps",
                "event timesteps must be non-decreasing",
                expected="sorted timesteps",
                actual=params.bednets.timesteps,
            )
        )
    for i, treatment in enumerate(params.clinical_treatment):
        if not _is_non_decreasing(treatment.timesteps):
            violations.append(
                Violation(
                    f"clinical_treatment[{i}].timesteps",
                    "event timesteps must be non-decreasing",
                    expected="sorted timesteps",
                    actual=treatment.timesteps,
                )
            )
    return violations


def check_params(params: Params) -> Params:
    """Raise if the params break any cross-field or ordering constraint.

    Shape and value problems are reported together as a ValidationError, and
    only once those are fixed are event orderings checked (ScheduleError).
    """
    violations = collect_violations(params)
    if violations:
        raise ValidationError(violations)
    order_violations = collect_order_violations(params)
    if order_violations:
        raise ScheduleError(order_violations)
    return params


def _from_pydantic(error: PydanticValidationError) -> list[Violation]:
    return [
        Violation(
            field=".".join(str(part) for part in err["loc"]) or "params",
            message=err["msg"],
            actual=err.get("input"),
        )
        for err in error.errors()
    ]


def build_params(data: dict[str, Any]) -> Params:
    """Build and fully check params from a plain (possibly nested) dict"""
    try:
        params = Params.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_from_pydantic(e)) from None
    return check_params(params)
