from .batch import Scenario, run_scenarios
from .equilibrium import EquilibriumSolution, set_equilibrium, solve_equilibrium
from .errors import (
    ConvergenceError,
    MalariaSimError,
    SchemaError,
    ScheduleError,
    SimulationCancelled,
    ValidationError,
    Violation,
)
from .output import OutputAggregator, SimulationOutput
from .parameters import (
    AL_PARAMS,
    ARAB_PARAMS,
    DHA_PQP_PARAMS,
    FUN_PARAMS,
    GAMB_PARAMS,
    SP_AQ_PARAMS,
    apply_overrides,
    check_params,
    load_default_parameters,
    load_parameters_file,
    set_bednets,
    set_clinical_treatment,
    set_drugs,
    set_species,
)
from .schedule import ActiveModifiers, InterventionSchedule
from .simulation import Simulation, run_simulation
from .state import (
    BednetParams,
    ClinicalTreatmentParams,
    DiseaseParams,
    DrugParams,
    EquilibriumParams,
    EquilibriumSummary,
    HumanParams,
    HumanState,
    MosquitoParams,
    OutputParams,
    Params,
    SpeciesParams,
    State,
    StateStats,
    make_state_from_hdf5,
)
