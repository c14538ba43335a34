#!/usr/bin/env python3
"""
Tests for the mode/route classifier.
"""

import sys
import itertools
import unittest
from pathlib import Path

import numpy as np

project_root = Path(__file__).parent.parent
src_path = str(project_root / 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from ferry_demand.core.data_models import (
    Agent, Corridor, Direction, ModePreference, QueueKey, Settlement, COASTAL_SETTLEMENTS
)
from ferry_demand.core.exceptions import UnclassifiedAgentError
from ferry_demand.components.route_classifier import (
    RouteClassifier, classify, classify_agent, VEHICLE_TABLE, QUEUE_TABLE
)

V = Settlement.VANCOUVER
G = Settlement.GIBSONS
R = Settlement.ROBERTS_CREEK
S = Settlement.SECHELT


def valid_trips():
    """Every (home, location, destination, direction) a real agent can be in."""
    for coastal in COASTAL_SETTLEMENTS:
        # Vancouver resident visiting the coast
        yield V, V, coastal, Direction.OUTBOUND
        yield V, coastal, coastal, Direction.RETURN
        # Coastal resident visiting Vancouver
        yield coastal, coastal, V, Direction.OUTBOUND
        yield coastal, V, V, Direction.RETURN


class TestDecisionTables(unittest.TestCase):
    """The lookup tables are exhaustive over their domains."""

    def test_vehicle_table_is_exhaustive(self):
        expected = set(itertools.product(ModePreference, (True, False)))
        self.assertEqual(set(VEHICLE_TABLE), expected)

    def test_queue_table_is_exhaustive(self):
        self.assertEqual(set(QUEUE_TABLE.values()), set(QueueKey))


class TestClassify(unittest.TestCase):
    """Behaviour of the scalar classifier."""

    def test_totality(self):
        """Every valid combination maps to exactly one queue."""
        combos = 0
        for (home, location, destination, direction), mode, corridor in itertools.product(
            valid_trips(), ModePreference, Corridor
        ):
            key = classify(home, location, destination, mode, direction, corridor)
            self.assertIn(key, set(QueueKey))
            combos += 1
        self.assertEqual(combos, 12 * 3 * 3)

    def test_never_bikes_always_drives(self):
        for (home, location, destination, direction), corridor in itertools.product(valid_trips(), Corridor):
            key = classify(home, location, destination, ModePreference.NEVER_BIKES, direction, corridor)
            self.assertFalse(key.is_bike)

    def test_always_bikes_even_without_corridor(self):
        for home, location, destination, direction in valid_trips():
            key = classify(home, location, destination, ModePreference.ALWAYS_BIKES, direction, Corridor.NONE)
            self.assertTrue(key.is_bike)

    def test_path_biker_without_corridor_drives(self):
        for home, location, destination, direction in valid_trips():
            key = classify(home, location, destination, ModePreference.BIKES_IF_PATH_AVAILABLE,
                           direction, Corridor.NONE)
            self.assertFalse(key.is_bike)

    def test_outbound_uses_destination_coverage(self):
        p = ModePreference.BIKES_IF_PATH_AVAILABLE
        self.assertEqual(classify(V, V, R, p, Direction.OUTBOUND, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.BIKE_OUTBOUND)
        self.assertEqual(classify(V, V, G, p, Direction.OUTBOUND, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.BIKE_OUTBOUND)
        self.assertEqual(classify(V, V, S, p, Direction.OUTBOUND, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.CAR_OUTBOUND)
        self.assertEqual(classify(V, V, S, p, Direction.OUTBOUND, Corridor.TO_SECHELT),
                         QueueKey.BIKE_OUTBOUND)

    def test_return_uses_home_coverage(self):
        p = ModePreference.BIKES_IF_PATH_AVAILABLE
        # Coastal residents heading home from Vancouver sail toward the coast
        self.assertEqual(classify(G, V, V, p, Direction.RETURN, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.BIKE_OUTBOUND)
        self.assertEqual(classify(R, V, V, p, Direction.RETURN, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.BIKE_OUTBOUND)
        self.assertEqual(classify(R, V, V, p, Direction.RETURN, Corridor.TO_SECHELT),
                         QueueKey.BIKE_OUTBOUND)
        self.assertEqual(classify(S, V, V, p, Direction.RETURN, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.CAR_OUTBOUND)
        self.assertEqual(classify(S, V, V, p, Direction.RETURN, Corridor.TO_SECHELT),
                         QueueKey.BIKE_OUTBOUND)

    def test_coastal_resident_leaving_home_sails_to_vancouver(self):
        p = ModePreference.BIKES_IF_PATH_AVAILABLE
        self.assertEqual(classify(G, G, V, p, Direction.OUTBOUND, Corridor.NONE), QueueKey.CAR_RETURN)
        self.assertEqual(classify(G, G, V, p, Direction.OUTBOUND, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.BIKE_RETURN)
        self.assertEqual(classify(S, S, V, p, Direction.OUTBOUND, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.CAR_RETURN)

    def test_vancouver_resident_coming_home(self):
        p = ModePreference.BIKES_IF_PATH_AVAILABLE
        self.assertEqual(classify(V, S, S, p, Direction.RETURN, Corridor.TO_ROBERTS_CREEK),
                         QueueKey.CAR_RETURN)
        self.assertEqual(classify(V, S, S, p, Direction.RETURN, Corridor.TO_SECHELT),
                         QueueKey.BIKE_RETURN)
        self.assertEqual(classify(V, R, R, ModePreference.ALWAYS_BIKES, Direction.RETURN, Corridor.NONE),
                         QueueKey.BIKE_RETURN)

    def test_classify_agent_record(self):
        agent = Agent(index=0, home=V, location=V, mode_preference=ModePreference.BIKES_IF_PATH_AVAILABLE,
                      balk_point=1.0, destination=G)
        self.assertEqual(classify_agent(agent, Direction.OUTBOUND, Corridor.TO_SECHELT),
                         QueueKey.BIKE_OUTBOUND)

    def test_outbound_agent_away_from_home_fails(self):
        with self.assertRaises(UnclassifiedAgentError) as ctx:
            classify(V, G, G, ModePreference.NEVER_BIKES, Direction.OUTBOUND, Corridor.NONE)
        self.assertEqual(ctx.exception.agent_tuple,
                         (V, G, G, ModePreference.NEVER_BIKES, Corridor.NONE))
        self.assertIn("location=GIBSONS", str(ctx.exception))

    def test_returning_agent_at_home_fails(self):
        with self.assertRaises(UnclassifiedAgentError):
            classify(G, G, V, ModePreference.NEVER_BIKES, Direction.RETURN, Corridor.NONE)

    def test_trip_that_does_not_cross_the_ferry_fails(self):
        with self.assertRaises(UnclassifiedAgentError):
            classify(G, G, S, ModePreference.NEVER_BIKES, Direction.OUTBOUND, Corridor.NONE)
        with self.assertRaises(UnclassifiedAgentError):
            classify(V, V, V, ModePreference.NEVER_BIKES, Direction.OUTBOUND, Corridor.NONE)

    def test_unknown_mode_preference_fails(self):
        with self.assertRaises(UnclassifiedAgentError) as ctx:
            classify(V, V, G, 7, Direction.OUTBOUND, Corridor.NONE)
        self.assertIn("ModePreference", str(ctx.exception))


class TestRouteClassifierBatch(unittest.TestCase):
    """The vectorized path agrees with the scalar classifier."""

    def test_batch_matches_scalar(self):
        trips = list(valid_trips())
        modes = list(ModePreference)
        rows = list(itertools.product(trips, modes))
        home = np.array([t[0] for t, _ in rows], dtype=np.int8)
        location = np.array([t[1] for t, _ in rows], dtype=np.int8)
        destination = np.array([t[2] for t, _ in rows], dtype=np.int8)
        mode = np.array([m for _, m in rows], dtype=np.int8)

        for corridor in Corridor:
            classifier = RouteClassifier(corridor)
            for direction in Direction:
                indices = np.array([i for i, (t, _) in enumerate(rows) if t[3] is direction])
                keys = classifier.classify_batch(indices, direction, home, location, destination, mode)
                for i, key in zip(indices, keys):
                    expected = classify(home[i], location[i], destination[i], mode[i], direction, corridor)
                    self.assertEqual(QueueKey(int(key)), expected)

    def test_batch_inconsistent_location_fails(self):
        classifier = RouteClassifier(Corridor.NONE)
        home = np.array([V], dtype=np.int8)
        location = np.array([G], dtype=np.int8)
        destination = np.array([G], dtype=np.int8)
        mode = np.array([ModePreference.NEVER_BIKES], dtype=np.int8)
        with self.assertRaises(UnclassifiedAgentError):
            classifier.classify_batch(np.array([0]), Direction.OUTBOUND, home, location, destination, mode)

    def test_empty_batch(self):
        classifier = RouteClassifier(Corridor.TO_SECHELT)
        empty = np.empty(0, dtype=np.int8)
        keys = classifier.classify_batch(np.empty(0, dtype=np.int64), Direction.RETURN,
                                         empty, empty, empty, empty)
        self.assertEqual(len(keys), 0)


if __name__ == '__main__':
    unittest.main()
