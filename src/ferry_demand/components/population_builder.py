"""
Population creation and one-time destination assignment.
"""

import logging
import numpy as np

from ..core.data_models import Population, Settlement, SimulationConfig
from .stochastic_generators import StochasticGenerators

logger = logging.getLogger(__name__)


class PopulationBuilder:
    """
    Creates the agent population from scaled settlement populations.
    """

    # Creation order of agents by home settlement
    SETTLEMENT_ORDER = (
        Settlement.VANCOUVER,
        Settlement.SECHELT,
        Settlement.GIBSONS,
        Settlement.ROBERTS_CREEK,
    )

    def __init__(self, config: SimulationConfig, generators: StochasticGenerators):
        """Initialize the population builder."""
        self.config = config
        self.generators = generators

    def build_homes(self) -> np.ndarray:
        """Home settlement of every agent, grouped by settlement."""
        counts = self.config.agent_counts()
        return np.concatenate([
            np.full(counts[settlement], int(settlement), dtype=np.int8)
            for settlement in self.SETTLEMENT_ORDER
        ])

    def assign_destinations(self, homes: np.ndarray) -> np.ndarray:
        """
        Assign each agent's cross-ferry destination.

        Vancouver residents draw a coastal settlement weighted by population;
        everyone else travels to Vancouver.

        Parameters:
        -----------
        homes : np.ndarray
            Home settlement codes.

        Returns:
        --------
        np.ndarray
            Destination settlement codes, same length as `homes`.
        """
        destinations = np.full(len(homes), int(Settlement.VANCOUVER), dtype=np.int8)
        from_vancouver = homes == Settlement.VANCOUVER
        n_vancouver = int(from_vancouver.sum())
        if n_vancouver:
            destinations[from_vancouver] = self.generators.sample_destination(size=n_vancouver)
        return destinations

    def build(self) -> Population:
        """Build the read-only population template."""
        homes = self.build_homes()
        size = len(homes)

        mode_preference = self.generators.sample_mode_preference(
            self.config.p_always_bike, self.config.p_bike_if_path, size=size
        )
        balk_point = self.generators.sample_balk_point(size=size)
        destination = self.assign_destinations(homes)

        population = Population(homes, mode_preference, balk_point, destination)

        logger.info(f"Built population of {size} agents "
                    f"({self.config.model_scale} people per agent)")
        home_counts = {s.name: n for s, n in population.counts_by_home().items()}
        mode_counts = {m.name: n for m, n in population.counts_by_mode().items()}
        logger.debug(f"Agents by home: {home_counts}")
        logger.debug(f"Agents by mode preference: {mode_counts}")

        return population
