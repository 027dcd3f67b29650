"""
Turns the bednet and clinical treatment timelines of a set of params into
the rate modifiers active at any timestep.

Protection is tracked per person rather than as a population scalar: each
person carries the timestep their current net was handed out (and which
distribution it came from) and the timestep of their last treatment, so the
decay of a net or a drug is evaluated from that person's own clock.
"""
from dataclasses import dataclass
from enum import Enum

import numpy as np

from malaria_ibm.errors import ScheduleError
from malaria_ibm.state import Array, People
from malaria_ibm.state.params import Params, collect_order_violations


class EventKind(str, Enum):
    BEDNET = "bednet"
    TREATMENT = "treatment"


@dataclass(frozen=True)
class ScheduledEvent:
    timestep: int
    kind: EventKind
    coverage: float
    index: int  # distribution index for bednets, drug index for treatment


@dataclass
class ActiveModifiers:
    """
    kill (Array.Species.Person.Float): Probability a net kills a mosquito attempting to feed
    repel (Array.Species.Person.Float): Probability a net repels a mosquito attempting to feed
    treatment_coverage (Array.Drug.Float): Probability a clinical case is treated with each drug
    prophylaxis (Array.Person.Float): Remaining drug protection against new infection
    """

    kill: Array.Species.Person.Float
    repel: Array.Species.Person.Float
    treatment_coverage: Array.Drug.Float
    prophylaxis: Array.Person.Float

    @property
    def total_treatment_coverage(self) -> float:
        return float(np.sum(self.treatment_coverage))


def _step_function(
    timesteps: Array.Event.Int, values: Array.Event.Float, t: int
) -> float:
    """Value of the last event at or before t, 0 before the first"""
    index = int(np.searchsorted(timesteps, t, side="right")) - 1
    if index < 0:
        return 0.0
    return float(values[index])


class InterventionSchedule:
    n_species: int
    n_drugs: int
    bednet_timesteps: Array.Event.Int
    bednet_coverages: Array.Event.Float
    retention: float
    dn0: Array.Species.Event.Float
    rn: Array.Species.Event.Float
    rnm: Array.Species.Event.Float
    gamman: Array.Event.Float
    treatment_timesteps: list[Array.Event.Int]
    treatment_coverages: list[Array.Event.Float]
    drug_shape: Array.Drug.Float
    drug_scale: Array.Drug.Float

    def __init__(self, params: Params) -> None:
        self.n_species = params.n_species
        self.n_drugs = len(params.drugs)

        bednets = params.bednets
        if bednets is None:
            self.bednet_timesteps = np.zeros(0, dtype=int)
            self.bednet_coverages = np.zeros(0)
            self.retention = np.inf
            empty = np.zeros((self.n_species, 0))
            self.dn0, self.rn, self.rnm = empty, empty, empty
            self.gamman = np.zeros(0)
        else:
            self.bednet_timesteps = np.array(bednets.timesteps, dtype=int)
            self.bednet_coverages = np.array(bednets.coverages, dtype=float)
            self.retention = bednets.retention
            self.dn0 = np.array(bednets.dn0, dtype=float)
            self.rn = np.array(bednets.rn, dtype=float)
            self.rnm = np.array(bednets.rnm, dtype=float)
            self.gamman = np.array(bednets.gamman, dtype=float)

        self.treatment_timesteps = [np.zeros(0, dtype=int)] * self.n_drugs
        self.treatment_coverages = [np.zeros(0)] * self.n_drugs
        for treatment in params.clinical_treatment:
            self.treatment_timesteps[treatment.drug_index] = np.array(
                treatment.timesteps, dtype=int
            )
            self.treatment_coverages[treatment.drug_index] = np.array(
                treatment.coverages, dtype=float
            )

        self.drug_shape = np.array([d.drug_prophylaxis_shape for d in params.drugs])
        self.drug_scale = np.array([d.drug_prophylaxis_scale for d in params.drugs])

    @classmethod
    def from_params(cls, params: Params) -> "InterventionSchedule":
        """Build the schedule, checking every event timeline is in order.

        Raises:
            ScheduleError: listing every timeline whose timesteps decrease.
        """
        violations = collect_order_violations(params)
        if violations:
            raise ScheduleError(violations)
        return cls(params)

    @property
    def timeline(self) -> list[ScheduledEvent]:
        """Every scheduled event, coverage 0 events included, ordered by timestep"""
        events = [
            ScheduledEvent(int(t), EventKind.BEDNET, float(c), i)
            for i, (t, c) in enumerate(zip(self.bednet_timesteps, self.bednet_coverages))
        ]
        for drug_index in range(self.n_drugs):
            events += [
                ScheduledEvent(int(t), EventKind.TREATMENT, float(c), drug_index)
                for t, c in zip(
                    self.treatment_timesteps[drug_index],
                    self.treatment_coverages[drug_index],
                )
            ]
        return sorted(events, key=lambda e: (e.timestep, e.kind.value, e.index))

    @property
    def net_loss_prob(self) -> float:
        """Daily probability a net holder discards their net"""
        return float(1 - np.exp(-1 / self.retention))

    def bednet_events_at(self, t: int) -> Array.General.Int:
        return np.flatnonzero(self.bednet_timesteps == t)

    def net_probabilities(
        self,
        net_time: Array.Person.Float,
        net_event: Array.Person.Int,
        t: int,
    ) -> tuple[Array.Species.Person.Float, Array.Species.Person.Float]:
        """
        Probabilities that each person's net kills or repels a feeding mosquito.

        Args:
            net_time (Array.Person.Float): Timestep each person's net was handed out, NaN for no net
            net_event (Array.Person.Int): Distribution each person's net came from, -1 for no net
            t (int): The current timestep

        Returns:
            tuple[Array.Species.Person.Float, Array.Species.Person.Float]: kill, repel
        """
        kill = np.zeros((self.n_species, len(net_time)))
        repel = np.zeros((self.n_species, len(net_time)))
        holders = net_event >= 0
        if np.any(holders):
            events = net_event[holders]
            insecticide_decay = np.exp(
                -np.log(2) / self.gamman[events] * (t - net_time[holders])
            )
            kill[:, holders] = self.dn0[:, events] * insecticide_decay
            # mosquitoes can only be repelled if the net did not kill them
            repel[:, holders] = (1 - kill[:, holders]) * (
                (self.rn[:, events] - self.rnm[:, events]) * insecticide_decay
                + self.rnm[:, events]
            )
        return kill, repel

    def treatment_coverage(self, t: int) -> Array.Drug.Float:
        return np.array(
            [
                _step_function(timesteps, coverages, t)
                for timesteps, coverages in zip(
                    self.treatment_timesteps, self.treatment_coverages
                )
            ]
        )

    def prophylaxis(
        self, drug: Array.Person.Int, drug_time: Array.Person.Float, t: int
    ) -> Array.Person.Float:
        """Weibull survival of the protection given by each person's last drug"""
        protection = np.zeros(len(drug))
        treated = drug >= 0
        if np.any(treated):
            drugs = drug[treated]
            time_since = t - drug_time[treated]
            protection[treated] = np.exp(
                -((time_since / self.drug_scale[drugs]) ** self.drug_shape[drugs])
            )
        return protection

    def modifiers_at(self, t: int, people: People) -> ActiveModifiers:
        kill, repel = self.net_probabilities(people.net_time, people.net_event, t)
        return ActiveModifiers(
            kill=kill,
            repel=repel,
            treatment_coverage=self.treatment_coverage(t),
            prophylaxis=self.prophylaxis(people.drug, people.drug_time, t),
        )
