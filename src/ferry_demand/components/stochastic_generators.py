"""
Random processes driving trip demand and agent attributes.
"""

import numpy as np
from typing import Optional, Union

from ..core.data_models import COASTAL_SETTLEMENTS, ModePreference, SimulationConfig


class StochasticGenerators:
    """
    Named samplers built once from configuration.

    Each instance owns a single numpy Generator, so separate instances
    (one per iteration or worker) never share random state. Every sampler
    returns a scalar when `size` is None and an array otherwise.
    """

    def __init__(self, config: SimulationConfig, rng: Union[np.random.Generator, np.random.SeedSequence, int, None] = None):
        """
        Parameters:
        -----------
        config : SimulationConfig
            Rates, scale and populations the distributions are calibrated from.
        rng : Generator, SeedSequence, int or None
            Source of randomness. Anything other than a Generator is passed
            to numpy.random.default_rng.
        """
        self.config = config
        self.rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)

        # Rates are per person; scaling turns them into per-agent probabilities
        self.peak_rate = config.peak_trip_rate * config.model_scale
        self.off_peak_rate = config.off_peak_trip_rate * config.model_scale

        coastal_total = sum(config.populations[s] for s in COASTAL_SETTLEMENTS)
        self.destinations = np.array([int(s) for s in COASTAL_SETTLEMENTS], dtype=np.int8)
        self.destination_weights = np.array(
            [config.populations[s] / coastal_total for s in COASTAL_SETTLEMENTS]
        )

    def sample_trip_initiation(self, peak: bool, size: Optional[int] = None):
        """Bernoulli draw: does an agent at home start a trip today?"""
        rate = self.peak_rate if peak else self.off_peak_rate
        draws = self.rng.random(size) < rate
        return bool(draws) if size is None else draws

    def sample_trip_duration(self, size: Optional[int] = None):
        """Poisson number of nights away."""
        draws = self.rng.poisson(self.config.mean_trip_nights, size)
        return int(draws) if size is None else draws.astype(np.int32)

    def sample_destination(self, size: Optional[int] = None):
        """Coastal destination weighted by each settlement's population share."""
        draws = self.rng.choice(self.destinations, size=size, p=self.destination_weights)
        return int(draws) if size is None else draws.astype(np.int8)

    def sample_mode_preference(self, p_always: float, p_if_path: float, size: Optional[int] = None):
        """
        Two-stage Bernoulli: always bikes with `p_always`, otherwise bikes
        if a path exists with `p_if_path`, otherwise never bikes.
        """
        n = 1 if size is None else size
        always = self.rng.random(n) < p_always
        if_path = self.rng.random(n) < p_if_path

        prefs = np.full(n, ModePreference.NEVER_BIKES, dtype=np.int8)
        prefs[~always & if_path] = ModePreference.BIKES_IF_PATH_AVAILABLE
        prefs[always] = ModePreference.ALWAYS_BIKES
        return ModePreference(int(prefs[0])) if size is None else prefs

    def sample_balk_point(self, size: Optional[int] = None):
        """Sailings an agent will wait before balking; infinite if balking is off."""
        if not self.config.balking_enabled:
            return float('inf') if size is None else np.full(size, np.inf)
        draws = self.rng.exponential(self.config.mean_balk_point, size)
        return float(draws) if size is None else draws

    def shuffle(self, values: np.ndarray) -> np.ndarray:
        """Return a randomly ordered copy (arrival order at the terminal)."""
        return self.rng.permutation(values)
