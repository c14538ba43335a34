#!/usr/bin/env python3
"""
Tests for the daily trip decision engine.
"""

import sys
import unittest
from pathlib import Path

import numpy as np

project_root = Path(__file__).parent.parent
src_path = str(project_root / 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from ferry_demand.core.data_models import ModePreference, Population, PopulationState, Settlement
from ferry_demand.core.exceptions import InvariantViolationError
from ferry_demand.components.trip_decision import TripDecisionEngine


class ScriptedGenerators:
    """Deterministic stand-in for StochasticGenerators."""

    def __init__(self, starts=True, nights=3):
        self.starts = starts
        self.nights = nights
        self.initiation_sizes = []

    def sample_trip_initiation(self, peak, size=None):
        self.initiation_sizes.append(size)
        return np.full(size, self.starts, dtype=bool)

    def sample_trip_duration(self, size=None):
        return np.full(size, self.nights, dtype=np.int32)


def make_population(n=4):
    homes = np.array([Settlement.VANCOUVER] * (n - 1) + [Settlement.SECHELT], dtype=np.int8)
    destinations = np.array([Settlement.GIBSONS] * (n - 1) + [Settlement.VANCOUVER], dtype=np.int8)
    return Population(homes, np.zeros(n, dtype=np.int8), np.full(n, np.inf), destinations)


def board_everyone(population, state, indices):
    """Move agents across the ferry the way the scheduler would."""
    leaving = state.location[indices] == population.home[indices]
    state.location[indices] = np.where(leaving, population.destination[indices], population.home[indices])


class TestTripDecisionEngine(unittest.TestCase):
    """Departure, continuation and return decisions."""

    def test_agents_at_home_depart(self):
        population = make_population()
        state = PopulationState(population)
        engine = TripDecisionEngine(ScriptedGenerators(starts=True, nights=3))

        decisions = engine.advance_day(population, state, peak=True)
        self.assertEqual(decisions.departing.tolist(), [0, 1, 2, 3])
        self.assertEqual(len(decisions.returning), 0)
        self.assertEqual(state.trip_length.tolist(), [3, 3, 3, 3])
        self.assertEqual(decisions.total, len(population))

    def test_no_initiation_means_staying(self):
        population = make_population()
        state = PopulationState(population)
        engine = TripDecisionEngine(ScriptedGenerators(starts=False))

        decisions = engine.advance_day(population, state, peak=False)
        self.assertEqual(len(decisions.departing), 0)
        self.assertEqual(decisions.staying, 4)
        self.assertEqual(decisions.total, 4)

    def test_zero_night_trip_means_staying(self):
        population = make_population()
        state = PopulationState(population)
        engine = TripDecisionEngine(ScriptedGenerators(starts=True, nights=0))

        decisions = engine.advance_day(population, state, peak=True)
        self.assertEqual(len(decisions.departing), 0)
        self.assertEqual(decisions.staying, 4)
        self.assertFalse(state.trip_length.any())

    def test_round_trip_returns_after_trip_length(self):
        population = make_population()
        state = PopulationState(population)
        generators = ScriptedGenerators(starts=True, nights=3)
        engine = TripDecisionEngine(generators)

        decisions = engine.advance_day(population, state, peak=True)  # day 0
        board_everyone(population, state, decisions.departing)
        generators.starts = False

        for day in (1, 2):
            decisions = engine.advance_day(population, state, peak=True)
            self.assertEqual(len(decisions.returning), 0, f"returned early on day {day}")
            self.assertEqual(decisions.continuing, 4)
            self.assertEqual(state.trip_length.tolist(), [3 - day] * 4)

        decisions = engine.advance_day(population, state, peak=True)  # day 3
        self.assertEqual(decisions.returning.tolist(), [0, 1, 2, 3])
        self.assertEqual(decisions.continuing, 0)

        board_everyone(population, state, decisions.returning)
        self.assertTrue((state.location == population.home).all())

    def test_away_with_no_nights_left_returns(self):
        population = make_population()
        state = PopulationState(population)
        state.location[0] = Settlement.GIBSONS
        engine = TripDecisionEngine(ScriptedGenerators(starts=False))

        decisions = engine.advance_day(population, state, peak=False)
        self.assertEqual(decisions.returning.tolist(), [0])

    def test_queued_agents_are_left_alone(self):
        population = make_population()
        state = PopulationState(population)
        state.queued[[0, 1]] = True
        state.trip_length[0] = 2
        generators = ScriptedGenerators(starts=True, nights=5)
        engine = TripDecisionEngine(generators)

        decisions = engine.advance_day(population, state, peak=True)
        self.assertEqual(decisions.departing.tolist(), [2, 3])
        self.assertEqual(decisions.pending, 2)
        self.assertEqual(state.trip_length[0], 2)
        self.assertEqual(state.trip_length[1], 0)
        self.assertEqual(decisions.total, 4)

    def test_deferred_departure_is_not_rerolled(self):
        population = make_population()
        state = PopulationState(population)
        state.trip_length[1] = 4  # balked yesterday
        generators = ScriptedGenerators(starts=False)
        engine = TripDecisionEngine(generators)

        decisions = engine.advance_day(population, state, peak=False)
        self.assertEqual(decisions.departing.tolist(), [1])
        self.assertEqual(state.trip_length[1], 4)
        self.assertEqual(generators.initiation_sizes, [3])

    def test_size_mismatch_fails_fast(self):
        population = make_population()
        state = PopulationState(population)
        state.trip_length = state.trip_length[:-1]
        engine = TripDecisionEngine(ScriptedGenerators())

        with self.assertRaises(InvariantViolationError):
            engine.advance_day(population, state, peak=True)

    def test_population_rejects_mismatched_arrays(self):
        with self.assertRaises(InvariantViolationError):
            Population(np.zeros(3, dtype=np.int8), np.zeros(2, dtype=np.int8),
                       np.zeros(3), np.ones(3, dtype=np.int8))


if __name__ == '__main__':
    unittest.main()
