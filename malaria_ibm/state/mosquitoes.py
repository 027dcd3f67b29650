from dataclasses import dataclass

from malaria_ibm.types import Array

from .hdf5 import ArrayDataclass


@dataclass(eq=False)
class Mosquitoes(ArrayDataclass):
    """
    Mosquito compartments, one entry per species.

    Values are absolute numbers of mosquitoes (not densities per human), so
    that they can be reported directly as counts.

    E, L and P are the early larval, late larval and pupal stages. Adult
    females are split into susceptible (Sm), incubating (Pm, within the
    extrinsic incubation period) and infectious (Im).
    """

    E: Array.Species.Float
    L: Array.Species.Float
    P: Array.Species.Float
    Sm: Array.Species.Float
    Pm: Array.Species.Float
    Im: Array.Species.Float
    K0: Array.Species.Float  # larval carrying capacity

    def __len__(self):
        return len(self.Sm)

    @property
    def total_adults(self) -> Array.Species.Float:
        return self.Sm + self.Pm + self.Im

    @property
    def infected(self) -> Array.Species.Float:
        return self.Pm + self.Im
