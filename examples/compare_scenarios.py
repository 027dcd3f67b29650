import logging

from malaria_ibm import (
    Scenario,
    apply_overrides,
    load_default_parameters,
    run_scenarios,
    set_bednets,
)

logging.basicConfig(level=logging.INFO)

# Three bednet coverages, all starting from the same annual EIR
base = apply_overrides(load_default_parameters(), {"human_population": 2000, "seed": 7})
scenarios = [
    Scenario(
        name=f"coverage_{coverage}",
        params=set_bednets(
            base,
            timesteps=[365, 1460],
            coverages=[coverage, coverage],
            retention=1825,
            dn0=[[0.533, 0.533]],
            rn=[[0.56, 0.56]],
            rnm=[[0.24, 0.24]],
            gamman=[963.6, 963.6],
        ),
        init_eir=50,
    )
    for coverage in (0.0, 0.5, 0.8)
]

if __name__ == "__main__":
    outputs = run_scenarios(scenarios, timesteps=365 * 7)
    for name, output in outputs.items():
        frame = output.to_dataframe()
        frame["prevalence_2_10"] = frame["n_detect_730_3650"] / frame["n_730_3650"]
        print(name, frame["prevalence_2_10"].iloc[-365:].mean())
        output.to_csv(f"{name}.csv")
