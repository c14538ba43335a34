"""
Simulation engine coordinating the yearly ferry demand runs.
"""

import json
import logging
import multiprocessing as mp
import os
import time
import numpy as np
import pandas as pd
from typing import Dict, Optional, Tuple

from .data_models import (
    Direction, Population, PopulationState, QueueKey, QUEUE_COLUMNS,
    SimulationConfig, SimulationResults
)
from .exceptions import InvariantViolationError
from ..components.stochastic_generators import StochasticGenerators
from ..components.population_builder import PopulationBuilder
from ..components.trip_decision import TripDecisionEngine
from ..components.route_classifier import RouteClassifier
from ..components.ferry_scheduler import FerryBoardingScheduler

logger = logging.getLogger(__name__)

# Spawn keys separating the population stream from the iteration streams
POPULATION_STREAM = 0
ITERATION_STREAM = 1


def iteration_seed(entropy, iteration: int) -> np.random.SeedSequence:
    """Seed sequence for one iteration, independent of how many are run."""
    return np.random.SeedSequence(entropy, spawn_key=(ITERATION_STREAM, iteration))


class IterationRunner:
    """
    Runs one independent simulated year over a shared population template.

    Owns its own random stream, agent state and ferry queues, so several
    runners can work on the same population in parallel.
    """

    def __init__(self, config: SimulationConfig, population: Population,
                 seed_sequence: np.random.SeedSequence, iteration: int = 0):
        self.config = config
        self.population = population
        self.iteration = iteration
        self.generators = StochasticGenerators(config, seed_sequence)
        self.trip_engine = TripDecisionEngine(self.generators)
        self.classifier = RouteClassifier(config.corridor)
        self.scheduler = FerryBoardingScheduler(config)
        self.state = PopulationState(population)

    def _enqueue_travellers(self, departing: np.ndarray, returning: np.ndarray) -> None:
        population, state = self.population, self.state
        outbound_keys = self.classifier.classify_batch(
            departing, Direction.OUTBOUND, population.home, state.location,
            population.destination, population.mode_preference
        )
        return_keys = self.classifier.classify_batch(
            returning, Direction.RETURN, population.home, state.location,
            population.destination, population.mode_preference
        )
        indices = np.concatenate([departing, returning])
        keys = np.concatenate([outbound_keys, return_keys])

        # Arrival order at the terminal is random within a day
        order = self.generators.shuffle(np.arange(len(indices)))
        indices, keys = indices[order], keys[order]
        for key in QueueKey:
            self.scheduler.enqueue(key, indices[keys == key], state)

    def _check_queues(self) -> None:
        queued = int(self.state.queued.sum())
        in_queues = sum(self.scheduler.queue_lengths().values())
        if queued != in_queues:
            raise InvariantViolationError(
                f"{queued} agents are flagged as queued but the ferry queues hold {in_queues}"
            )

    def run_day(self, day: int):
        """Simulate one day and return its tally."""
        peak = self.config.is_peak_day(day)
        decisions = self.trip_engine.advance_day(self.population, self.state, peak)
        if decisions.total != len(self.population):
            raise InvariantViolationError(
                f"Day {day}: decided for {decisions.total} of {len(self.population)} agents"
            )

        self._enqueue_travellers(decisions.departing, decisions.returning)
        tally = self.scheduler.run_day(self.population, self.state)
        self._check_queues()

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Iteration {self.iteration} day {day} (peak={peak}): "
                f"{len(decisions.departing)} departing, {len(decisions.returning)} returning, "
                f"boarded {[tally.boarded[k] for k in QueueKey]}, "
                f"balked {[tally.balked[k] for k in QueueKey]}, "
                f"queued {[tally.queue_lengths[k] for k in QueueKey]}"
            )
        return tally

    def run(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Simulate the whole year.

        Returns:
        --------
        Tuple[np.ndarray, np.ndarray, np.ndarray]
            Boarded, balked and end-of-day queue lengths, each shaped (days, 4).
        """
        days = self.config.days_per_year
        boarded = np.zeros((days, len(QueueKey)), dtype=np.int64)
        balked = np.zeros_like(boarded)
        queue_lengths = np.zeros_like(boarded)

        for day in range(days):
            tally = self.run_day(day)
            for key in QueueKey:
                boarded[day, key] = tally.boarded[key]
                balked[day, key] = tally.balked[key]
                queue_lengths[day, key] = tally.queue_lengths[key]

        return boarded, balked, queue_lengths


def _run_iteration_worker(args):
    """Wrapper for multiprocessing"""
    config, population, entropy, iteration = args
    runner = IterationRunner(config, population, iteration_seed(entropy, iteration), iteration)
    return runner.run()


class SimulationEngine:
    """
    Main engine that coordinates the ferry demand simulation.
    """

    def __init__(self, config: SimulationConfig = None):
        """Initialize the simulation engine."""
        self.config = config if config else SimulationConfig()
        self.config.validate()

        # Record the entropy so unseeded runs can be reproduced
        self.entropy = np.random.SeedSequence(self.config.seed).entropy

        self.population: Optional[Population] = None
        self.results: Optional[SimulationResults] = None

    def setup_simulation(self) -> Population:
        """
        Build the population template shared by every iteration.

        Returns:
        --------
        Population
            The read-only agent population.
        """
        seed_sequence = np.random.SeedSequence(self.entropy, spawn_key=(POPULATION_STREAM,))
        generators = StochasticGenerators(self.config, seed_sequence)
        self.population = PopulationBuilder(self.config, generators).build()
        return self.population

    def run_iteration(self, iteration: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Run a single iteration in this process."""
        if self.population is None:
            self.setup_simulation()
        runner = IterationRunner(
            self.config, self.population, iteration_seed(self.entropy, iteration), iteration
        )
        return runner.run()

    def run_simulation(self) -> SimulationResults:
        """
        Run every iteration and collect the daily series.

        Returns:
        --------
        SimulationResults
            Daily counts indexed by (iteration, day, queue).
        """
        if self.population is None:
            self.setup_simulation()

        n_iterations = self.config.n_iterations
        n_workers = min(self.config.n_workers, n_iterations)
        logger.info(f"Starting {n_iterations} iteration(s) of {self.config.days_per_year} days "
                    f"with corridor {self.config.corridor.name} (entropy {self.entropy})")
        start_time = time.time()

        if n_workers > 1:
            tasks = [(self.config, self.population, self.entropy, n) for n in range(n_iterations)]
            with mp.Pool(processes=n_workers) as pool:
                outputs = pool.map(_run_iteration_worker, tasks)
        else:
            outputs = []
            for n in range(n_iterations):
                iteration_start = time.time()
                outputs.append(self.run_iteration(n))
                logger.info(f"Iteration {n + 1}/{n_iterations} completed in "
                            f"{time.time() - iteration_start:.2f} seconds")

        boarded, balked, queue_lengths = (np.stack(arrays) for arrays in zip(*outputs))
        self.results = SimulationResults(boarded, balked, queue_lengths)

        logger.info(f"Simulation completed in {time.time() - start_time:.2f} seconds")
        return self.results

    def get_summary_statistics(self) -> Dict:
        """
        Generate summary statistics from simulation results.

        Returns:
        --------
        Dict
            Dictionary of summary statistics.
        """
        if self.results is None:
            return {"status": "No results available"}

        counts = self.results.counts
        days = np.arange(self.results.n_days)
        peak = np.array([self.config.is_peak_day(d) for d in days])

        per_iteration_totals = counts.sum(axis=1)  # (iterations, 4)
        summary = {
            'corridor': self.config.corridor.name,
            'p_bike_if_path': self.config.p_bike_if_path,
            'p_always_bike': self.config.p_always_bike,
            'n_iterations': self.results.n_iterations,
            'n_agents': len(self.population) if self.population is not None else None,
            'model_scale': self.config.model_scale,
            'entropy': str(self.entropy),
        }

        for key in QueueKey:
            column = QUEUE_COLUMNS[key]
            summary[f'mean_total_{column}'] = float(per_iteration_totals[:, key].mean())
            summary[f'mean_daily_{column}_peak'] = float(counts[:, peak, key].mean()) if peak.any() else 0.0
            summary[f'mean_daily_{column}_off_peak'] = float(counts[:, ~peak, key].mean()) if (~peak).any() else 0.0
            summary[f'total_{column}_balked'] = int(self.results.balked[:, :, key].sum())
            summary[f'max_{column}_queue'] = int(self.results.queue_lengths[:, :, key].max())

        bike_trips = per_iteration_totals[:, [QueueKey.BIKE_OUTBOUND, QueueKey.BIKE_RETURN]].sum()
        all_trips = per_iteration_totals.sum()
        summary['bike_mode_share'] = float(bike_trips / all_trips) if all_trips > 0 else 0.0

        return summary

    def export_results(self, output_dir: str = '.', cumulative: bool = False) -> Dict[str, str]:
        """
        Export simulation results to CSV and JSON files.

        Parameters:
        -----------
        output_dir : str
            Directory to save output files.
        cumulative : bool
            Write running totals instead of daily counts in the wide table.

        Returns:
        --------
        Dict[str, str]
            Paths of the written files.
        """
        if self.results is None:
            raise InvariantViolationError("No results to export; run the simulation first")

        os.makedirs(output_dir, exist_ok=True)
        paths = {
            'wide': os.path.join(output_dir, 'ferry_trips.csv'),
            'long': os.path.join(output_dir, 'ferry_trips_long.csv'),
            'summary': os.path.join(output_dir, 'summary_statistics.json'),
        }

        self.results.to_wide_frame(cumulative=cumulative).to_csv(paths['wide'], index=False)
        logger.info(f"Exported {self.results.n_days} days x {self.results.n_iterations} iteration(s) to {paths['wide']}")

        long_df: pd.DataFrame = self.results.to_frame()
        long_df.to_csv(paths['long'], index=False)
        logger.info(f"Exported {len(long_df)} daily records to {paths['long']}")

        with open(paths['summary'], 'w') as f:
            json.dump(self.get_summary_statistics(), f, indent=2, default=str)
        logger.info(f"Exported summary statistics to {paths['summary']}")

        return paths
