import pytest

from malaria_ibm import (
    AL_PARAMS,
    SP_AQ_PARAMS,
    Params,
    apply_overrides,
    load_default_parameters,
    set_bednets,
    set_drugs,
)


@pytest.fixture
def small_params() -> Params:
    return apply_overrides(
        load_default_parameters(), {"human_population": 200, "seed": 1}
    )


@pytest.fixture
def bednet_params(small_params: Params) -> Params:
    return set_bednets(
        small_params,
        timesteps=[365, 1460],
        coverages=[0.5, 0.5],
        retention=1825,
        dn0=[[0.533, 0.533]],
        rn=[[0.56, 0.56]],
        rnm=[[0.24, 0.24]],
        gamman=[963.6, 963.6],
    )


@pytest.fixture
def drug_params(small_params: Params) -> Params:
    return set_drugs(small_params, [AL_PARAMS, SP_AQ_PARAMS])
