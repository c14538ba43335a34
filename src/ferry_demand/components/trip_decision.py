"""
Daily trip initiation, continuation and return decisions.
"""

import numpy as np
from dataclasses import dataclass

from ..core.data_models import Population, PopulationState
from .stochastic_generators import StochasticGenerators


@dataclass
class TripDecisions:
    """Outcome of one day's decisions. Index arrays are in agent order."""
    departing: np.ndarray
    returning: np.ndarray
    staying: int = 0
    continuing: int = 0
    pending: int = 0  # already queued from an earlier day

    @property
    def total(self) -> int:
        return len(self.departing) + len(self.returning) + self.staying + self.continuing + self.pending


class TripDecisionEngine:
    """
    Decides, once per simulated day, which agents leave home, which keep
    vacationing and which head back.
    """

    def __init__(self, generators: StochasticGenerators):
        """Initialize the engine with the iteration's random stream."""
        self.generators = generators

    def advance_day(self, population: Population, state: PopulationState, peak: bool) -> TripDecisions:
        """
        Apply the day's trip decisions to `state.trip_length`.

        Parameters:
        -----------
        population : Population
            Read-only agent template.
        state : PopulationState
            Iteration state; `trip_length` is updated in place.
        peak : bool
            Whether the peak-season initiation rate applies.

        Returns:
        --------
        TripDecisions
            Agents departing and returning today, plus counts of the rest.
        """
        state.check_matches(population)

        free = ~state.queued
        away = state.on_vacation(population)
        trip_length = state.trip_length

        at_home = free & ~away
        deferred = at_home & (trip_length > 0)  # balked yesterday, retry without re-rolling
        deciding = np.flatnonzero(at_home & (trip_length == 0))

        starts = self.generators.sample_trip_initiation(peak, size=len(deciding))
        starters = deciding[starts]
        nights = self.generators.sample_trip_duration(size=len(starters))
        # A zero-night draw means staying home
        starters = starters[nights > 0]
        trip_length[starters] = nights[nights > 0]

        departing_mask = deferred.copy()
        departing_mask[starters] = True

        vacationing = free & away & (trip_length > 0)
        trip_length[vacationing] -= 1
        returning_mask = free & away & (trip_length == 0)

        departing = np.flatnonzero(departing_mask)
        returning = np.flatnonzero(returning_mask)
        continuing = int((vacationing & ~returning_mask).sum())

        return TripDecisions(
            departing=departing,
            returning=returning,
            staying=int(at_home.sum()) - len(departing),
            continuing=continuing,
            pending=int(state.queued.sum()),
        )
