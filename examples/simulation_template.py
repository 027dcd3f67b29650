from functools import partial

from tqdm.contrib.concurrent import process_map

from malaria_ibm import (
    AL_PARAMS,
    ARAB_PARAMS,
    GAMB_PARAMS,
    SP_AQ_PARAMS,
    Simulation,
    apply_overrides,
    load_default_parameters,
    set_bednets,
    set_clinical_treatment,
    set_drugs,
    set_species,
)
from malaria_ibm.tools import Data, add_output_to_run_data, write_data_to_csv


# You can edit the inputs to this function to set more parameters dynamically
def get_parameters(iter, bednet_coverage=0.5, treatment_coverage=0.4):
    # setting the seed of the model is optional, but good practice
    seed = iter + iter * 3758

    # start from the default parameters, and change the ones we need
    # A full list of the parameters can be found in `malaria_ibm/state/params.py`
    params = apply_overrides(
        load_default_parameters(),
        {
            "human_population": 1000,
            "seed": seed,
            # output clinical incidence in under 5s and in everyone
            "clinical_incidence_age_bands": [[0, 1825], [0, 36500]],
            "extra_columns": ["n_detect_0_1825", "n_0_1825"],
        },
    )

    # Two species of mosquito, with 70% of adult mosquitoes being gambiae
    # Species must be set before the bednets, since the bednet efficacy
    # is given per species
    params = set_species(params, [GAMB_PARAMS, ARAB_PARAMS], [0.7, 0.3])

    # Bednets are handed out every 3 years, starting at the end of the first year.
    # Each row of dn0, rn and rnm is a species and each column a distribution
    # dn0 is the probability a new net kills a mosquito trying to feed,
    # rn the probability it repels it and rnm the lowest the repel probability falls to
    # gamman is the half life (in days) of the insecticide on the nets of each distribution
    distributions = [365, 365 * 4, 365 * 7]
    params = set_bednets(
        params,
        timesteps=distributions,
        coverages=[bednet_coverage] * len(distributions),
        # mean number of days a net is kept
        retention=5 * 365,
        dn0=[[0.533] * len(distributions), [0.45] * len(distributions)],
        rn=[[0.56] * len(distributions), [0.5] * len(distributions)],
        rnm=[[0.24] * len(distributions), [0.24] * len(distributions)],
        gamman=[2.64 * 365] * len(distributions),
    )

    # Clinical cases are treated with AL from the start, and
    # SP-AQ is added in year 5
    params = set_drugs(params, [AL_PARAMS, SP_AQ_PARAMS])
    params = set_clinical_treatment(params, 0, [0], [treatment_coverage])
    params = set_clinical_treatment(params, 1, [365 * 5], [0.1])
    return params


# Function to run and save simulations
def run_simulations(
    i,
    verbose=False,
    init_eir=20,
    timesteps=365 * 10,
    bednet_coverage=0.5,
):
    params = get_parameters(i, bednet_coverage=bednet_coverage)

    # The simulation starts from the steady state for the given annual EIR,
    # with no interventions active
    simulation = Simulation.from_params(params, init_eir, verbose=verbose)
    output = simulation.run(timesteps)

    # Every column of the output, keyed by timestep and measurement
    run_data: Data = {}
    add_output_to_run_data(output, run_data)

    # Just the measurements we want for a smaller file
    run_data_prevalence: Data = {}
    add_output_to_run_data(
        output,
        run_data_prevalence,
        measurements=["n_detect_730_3650", "n_730_3650", "total_M_gamb", "total_M_arab"],
    )
    return run_data, run_data_prevalence


if __name__ == "__main__":
    # Run the simulations in parallel, each with a different seed
    runs = 5
    data = process_map(
        partial(run_simulations, bednet_coverage=0.6),
        range(runs),
        max_workers=5,
    )

    # one column per run (draw_0, draw_1, ...), one row per timestep and measurement
    write_data_to_csv([d[0] for d in data], "malaria_full.csv")
    write_data_to_csv([d[1] for d in data], "malaria_prevalence.csv")
