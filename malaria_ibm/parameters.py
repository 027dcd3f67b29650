"""
Building and modifying parameter snapshots.

Every function here takes a `Params` snapshot and returns a new one; the
snapshot passed in is never changed.

    params = load_default_parameters()
    params = apply_overrides(params, {"human_population": 2000, "seed": 42})
    params = set_species(params, [GAMB_PARAMS, FUN_PARAMS], [0.6, 0.4])
    params = set_bednets(params, timesteps=[365], coverages=[0.5], ...)
"""
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from malaria_ibm.errors import ValidationError, Violation
from malaria_ibm.state.params import (
    AL_PARAMS,
    ARAB_PARAMS,
    DHA_PQP_PARAMS,
    FUN_PARAMS,
    GAMB_PARAMS,
    SP_AQ_PARAMS,
    DrugParams,
    Params,
    SpeciesParams,
    build_params,
    check_params,
)

__all__ = [
    "AL_PARAMS",
    "ARAB_PARAMS",
    "DHA_PQP_PARAMS",
    "FUN_PARAMS",
    "GAMB_PARAMS",
    "SP_AQ_PARAMS",
    "apply_overrides",
    "check_params",
    "load_default_parameters",
    "load_parameters_file",
    "set_bednets",
    "set_clinical_treatment",
    "set_drugs",
    "set_species",
]

_NESTED = ("humans", "disease", "mosquito", "output", "equilibrium")


def load_default_parameters() -> Params:
    return Params()


def _resolve_name(name: str) -> list[str] | None:
    if "." in name:
        return name.split(".")
    if name in Params.model_fields:
        return [name]
    matches = [
        nested
        for nested in _NESTED
        if name in Params.model_fields[nested].annotation.model_fields  # type: ignore
    ]
    if len(matches) == 1:
        return [matches[0], name]
    return None


def _set_path(data: dict[str, Any], path: list[str], value: Any) -> bool:
    current = data
    for key in path[:-1]:
        if not isinstance(current, dict) or not isinstance(current.get(key), dict):
            return False
        current = current[key]
    if not isinstance(current, dict) or path[-1] not in current:
        return False
    if isinstance(value, BaseModel):
        value = value.model_dump()
    current[path[-1]] = value
    return True


def apply_overrides(params: Params, overrides: Mapping[str, Any]) -> Params:
    """Return a copy of params with the named values replaced.

    Names may be top-level fields ("seed"), dotted paths
    ("humans.human_population"), or a bare field name found in exactly one of
    the nested groups ("human_population").

    Raises:
        ValidationError: listing every unknown name and every value or
            cross-field constraint broken by the new values.
    """
    data = params.model_dump()
    unknown = []
    for name, value in overrides.items():
        path = _resolve_name(name)
        if path is None or not _set_path(data, path, value):
            unknown.append(
                Violation(
                    name,
                    "unknown parameter",
                    expected="a parameter name or dotted path",
                    actual=name,
                )
            )
    if unknown:
        raise ValidationError(unknown)
    return build_params(data)


def _with(params: Params, **changes: Any) -> Params:
    data = params.model_dump()
    for key, value in changes.items():
        if isinstance(value, BaseModel):
            value = value.model_dump()
        elif isinstance(value, (list, tuple)):
            value = [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
        data[key] = value
    return build_params(data)


def set_species(
    params: Params, species: Sequence[SpeciesParams], proportions: Sequence[float]
) -> Params:
    """Replace the simulated mosquito species and their relative abundance.

    Proportions must sum to 1 (within 1e-6). Existing bednet matrices must
    still have one row per species, so set species before bednets.
    """
    return _with(params, species=list(species), species_proportions=list(proportions))


def set_bednets(
    params: Params,
    timesteps: Sequence[int],
    coverages: Sequence[float],
    retention: float,
    dn0: Sequence[Sequence[float]],
    rn: Sequence[Sequence[float]],
    rnm: Sequence[Sequence[float]],
    gamman: Sequence[float],
) -> Params:
    """Schedule bednet distributions.

    Args:
        timesteps: Timesteps of each distribution, non-decreasing.
        coverages: Proportion of the population given a new net at each one.
        retention: Mean number of days a net is kept.
        dn0: Species x distribution matrix of kill probabilities.
        rn: Species x distribution matrix of repel probabilities.
        rnm: Species x distribution matrix of minimum repel probabilities.
        gamman: Insecticide half-life (days) of the nets of each distribution.
    """
    bednets = {
        "timesteps": list(timesteps),
        "coverages": list(coverages),
        "retention": retention,
        "dn0": [list(row) for row in dn0],
        "rn": [list(row) for row in rn],
        "rnm": [list(row) for row in rnm],
        "gamman": list(gamman),
    }
    return _with(params, bednets=bednets)


def set_drugs(params: Params, drugs: Sequence[DrugParams]) -> Params:
    return _with(params, drugs=list(drugs))


def set_clinical_treatment(
    params: Params,
    drug_index: int,
    timesteps: Sequence[int],
    coverages: Sequence[float],
) -> Params:
    """Set the clinical treatment timeline of one drug.

    Timelines of other drugs are kept; calling again for the same drug
    replaces only that drug's timeline.
    """
    timelines = [
        t.model_dump()
        for t in params.clinical_treatment
        if t.drug_index != drug_index
    ]
    timelines.append(
        {
            "drug_index": drug_index,
            "timesteps": list(timesteps),
            "coverages": list(coverages),
        }
    )
    timelines.sort(key=lambda t: t["drug_index"])
    return _with(params, clinical_treatment=timelines)


def load_parameters_file(path: str | Path) -> Params:
    """Load a JSON mapping of overrides and apply it to the defaults"""
    with open(path) as f:
        overrides = json.load(f)
    if not isinstance(overrides, dict):
        raise ValidationError(
            [Violation(str(path), "file must contain a JSON object", actual=overrides)]
        )
    return apply_overrides(load_default_parameters(), overrides)
