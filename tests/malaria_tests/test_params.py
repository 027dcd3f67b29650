import json

import pydantic
import pytest

from malaria_ibm import (
    AL_PARAMS,
    ARAB_PARAMS,
    FUN_PARAMS,
    GAMB_PARAMS,
    Params,
    ScheduleError,
    ValidationError,
    apply_overrides,
    check_params,
    load_default_parameters,
    load_parameters_file,
    set_bednets,
    set_clinical_treatment,
    set_drugs,
    set_species,
)
from malaria_ibm.state import BednetParams, HumanParams


def test_defaults_are_valid():
    params = load_default_parameters()
    assert check_params(params) is params
    assert params.species_names == ["gamb"]
    assert params.bednets is None


def test_params_are_frozen():
    params = load_default_parameters()
    with pytest.raises(pydantic.ValidationError, match="frozen"):
        params.seed = 4
    with pytest.raises(pydantic.ValidationError, match="frozen"):
        params.humans.human_population = 4


def test_apply_overrides_name_forms():
    params = load_default_parameters()
    new_params = apply_overrides(
        params,
        {"seed": 7, "human_population": 50, "disease.dur_E": 10, "mosquito.eip": 12},
    )
    assert new_params.seed == 7
    assert new_params.humans.human_population == 50
    assert new_params.disease.dur_E == 10
    assert new_params.mosquito.eip == 12
    # the original snapshot is unchanged
    assert params.seed == 0
    assert params.humans.human_population == 1000


def test_apply_overrides_collects_all_unknown_names():
    with pytest.raises(ValidationError) as e:
        apply_overrides(
            load_default_parameters(), {"not_a_param": 1, "humans.nope": 2}
        )
    assert e.value.fields == ["not_a_param", "humans.nope"]


def test_apply_overrides_bad_value():
    with pytest.raises(ValidationError) as e:
        apply_overrides(load_default_parameters(), {"human_population": 0})
    assert e.value.fields == ["humans.human_population"]


def test_validation_error_is_value_error():
    with pytest.raises(ValueError):
        apply_overrides(load_default_parameters(), {"dur_E": -1})


def test_violation_details():
    with pytest.raises(ValidationError) as e:
        set_species(load_default_parameters(), [GAMB_PARAMS, FUN_PARAMS], [0.5, 0.6])
    (violation,) = e.value.violations
    assert violation.field == "species_proportions"
    assert violation.actual == pytest.approx(1.1)
    assert "species_proportions" in str(e.value)


def test_set_species_tolerance():
    params = set_species(
        load_default_parameters(), [GAMB_PARAMS, ARAB_PARAMS], [0.5, 0.5000005]
    )
    assert params.species_names == ["gamb", "arab"]


def test_set_species_length_mismatch():
    with pytest.raises(ValidationError) as e:
        set_species(load_default_parameters(), [GAMB_PARAMS, ARAB_PARAMS], [1.0])
    assert "species_proportions" in e.value.fields


def test_set_species_duplicate_names():
    with pytest.raises(ValidationError) as e:
        set_species(load_default_parameters(), [GAMB_PARAMS, GAMB_PARAMS], [0.5, 0.5])
    assert e.value.fields == ["species"]


def test_set_bednets():
    params = set_bednets(
        load_default_parameters(),
        timesteps=[365, 730],
        coverages=[0.5, 0.8],
        retention=1825,
        dn0=[[0.533, 0.45]],
        rn=[[0.56, 0.5]],
        rnm=[[0.24, 0.24]],
        gamman=[963.6, 963.6],
    )
    assert params.bednets is not None
    assert params.bednets.timesteps == (365, 730)
    assert params.bednets.dn0 == ((0.533, 0.45),)


def test_set_bednets_column_mismatch_lists_every_violation():
    with pytest.raises(ValidationError) as e:
        set_bednets(
            load_default_parameters(),
            timesteps=[365],
            coverages=[0.5, 0.5],
            retention=1825,
            dn0=[[0.533, 0.533]],
            rn=[[0.56]],
            rnm=[[0.24]],
            gamman=[963.6, 963.6],
        )
    assert e.value.fields == [
        "bednets.coverages",
        "bednets.gamman",
        "bednets.dn0[0]",
    ]


def test_set_bednets_row_mismatch():
    params = set_species(
        load_default_parameters(), [GAMB_PARAMS, FUN_PARAMS], [0.5, 0.5]
    )
    with pytest.raises(ValidationError) as e:
        set_bednets(
            params,
            timesteps=[365],
            coverages=[0.5],
            retention=1825,
            dn0=[[0.533]],
            rn=[[0.56], [0.56]],
            rnm=[[0.24], [0.24]],
            gamman=[963.6],
        )
    assert e.value.fields == ["bednets.dn0"]


def test_set_bednets_out_of_order():
    with pytest.raises(ScheduleError) as e:
        set_bednets(
            load_default_parameters(),
            timesteps=[730, 365],
            coverages=[0.5, 0.5],
            retention=1825,
            dn0=[[0.533, 0.533]],
            rn=[[0.56, 0.56]],
            rnm=[[0.24, 0.24]],
            gamman=[963.6, 963.6],
        )
    assert e.value.fields == ["bednets.timesteps"]


@pytest.mark.parametrize(
    "retention, gamman, field",
    [
        (float("nan"), 963.6, "bednets.retention"),
        (float("inf"), 963.6, "bednets.retention"),
        (1825, float("nan"), "bednets.gamman[0]"),
        (1825, float("inf"), "bednets.gamman[0]"),
    ],
)
def test_set_bednets_non_finite_durations(retention, gamman, field):
    with pytest.raises(ValidationError) as e:
        set_bednets(
            load_default_parameters(),
            timesteps=[365],
            coverages=[0.5],
            retention=retention,
            dn0=[[0.533]],
            rn=[[0.56]],
            rnm=[[0.24]],
            gamman=[gamman],
        )
    assert e.value.fields == [field]


def test_set_clinical_treatment_keeps_other_drugs(drug_params):
    params = set_clinical_treatment(drug_params, 0, [0, 365], [0.4, 0.0])
    params = set_clinical_treatment(params, 1, [365], [0.5])
    assert len(params.clinical_treatment) == 2
    first, second = params.clinical_treatment
    assert (first.drug_index, first.timesteps, first.coverages) == (
        0,
        (0, 365),
        (0.4, 0.0),
    )
    assert (second.drug_index, second.timesteps, second.coverages) == (
        1,
        (365,),
        (0.5,),
    )


def test_set_clinical_treatment_replaces_same_drug(drug_params):
    params = set_clinical_treatment(drug_params, 0, [0], [0.4])
    params = set_clinical_treatment(params, 0, [100], [0.2])
    (treatment,) = params.clinical_treatment
    assert treatment.timesteps == (100,)
    assert treatment.coverages == (0.2,)


def test_set_clinical_treatment_unknown_drug():
    params = set_drugs(load_default_parameters(), [AL_PARAMS])
    with pytest.raises(ValidationError) as e:
        set_clinical_treatment(params, 3, [0], [0.4])
    assert e.value.fields == ["clinical_treatment[0].drug_index"]


def test_set_clinical_treatment_total_coverage(drug_params):
    params = set_clinical_treatment(drug_params, 0, [0], [0.7])
    with pytest.raises(ValidationError) as e:
        set_clinical_treatment(params, 1, [100], [0.5])
    assert e.value.fields == ["clinical_treatment"]


def test_check_params_on_directly_built_params():
    params = Params(species_proportions=(0.5,))
    with pytest.raises(ValidationError):
        check_params(params)


def test_check_params_schedule_after_shape():
    params = Params(
        humans=HumanParams(human_population=10),
        bednets=BednetParams(
            timesteps=(100, 50),
            coverages=(0.5, 0.5),
            retention=1825,
            dn0=((0.5, 0.5),),
            rn=((0.3, 0.3),),
            rnm=((0.2, 0.2),),
            gamman=(900.0, 900.0),
        ),
    )
    with pytest.raises(ScheduleError):
        check_params(params)


def test_load_parameters_file(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({"seed": 3, "humans.average_age": 8000}))
    params = load_parameters_file(path)
    assert params.seed == 3
    assert params.humans.average_age == 8000


def test_load_parameters_file_not_a_mapping(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps([1, 2]))
    with pytest.raises(ValidationError):
        load_parameters_file(path)
