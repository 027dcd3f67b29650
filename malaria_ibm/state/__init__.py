from malaria_ibm.types import Array

from .derived_params import DerivedParams
from .mosquitoes import Mosquitoes
from .params import (
    BednetParams,
    ClinicalTreatmentParams,
    DiseaseParams,
    DrugParams,
    EquilibriumParams,
    HumanParams,
    MosquitoParams,
    OutputParams,
    Params,
    SpeciesParams,
)
from .people import HumanState, People
from .state import (
    EquilibriumSummary,
    State,
    StateStats,
    StepRecord,
    make_state_from_hdf5,
)
