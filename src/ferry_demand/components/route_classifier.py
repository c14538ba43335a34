"""
Mode and route classification of traveling agents into ferry queues.

Every agent that travels on a given day is routed into exactly one of the
four ferry queues. The choice is made by two small exhaustive tables: one
picks the vehicle from the agent's mode preference and whether the bike
corridor covers the coastal end of the trip, the other picks the queue from
the vehicle and the sailing direction.
"""

import itertools
import numpy as np
from typing import Dict, Tuple

from ..core.data_models import (
    Agent, Corridor, Direction, ModePreference, QueueKey, Settlement
)
from ..core.exceptions import UnclassifiedAgentError

CAR = 'car'
BIKE = 'bike'

# (mode_preference, corridor covers the leg) -> vehicle
VEHICLE_TABLE: Dict[Tuple[ModePreference, bool], str] = {
    (ModePreference.NEVER_BIKES, True): CAR,
    (ModePreference.NEVER_BIKES, False): CAR,
    (ModePreference.ALWAYS_BIKES, True): BIKE,
    (ModePreference.ALWAYS_BIKES, False): BIKE,
    (ModePreference.BIKES_IF_PATH_AVAILABLE, True): BIKE,
    (ModePreference.BIKES_IF_PATH_AVAILABLE, False): CAR,
}

# (vehicle, sailing toward Vancouver) -> queue
QUEUE_TABLE: Dict[Tuple[str, bool], QueueKey] = {
    (CAR, False): QueueKey.CAR_OUTBOUND,
    (BIKE, False): QueueKey.BIKE_OUTBOUND,
    (CAR, True): QueueKey.CAR_RETURN,
    (BIKE, True): QueueKey.BIKE_RETURN,
}


def _coerce(enum_cls, value, context):
    try:
        return enum_cls(int(value))
    except (ValueError, TypeError):
        raise UnclassifiedAgentError(*context, reason=f"{value!r} is not a valid {enum_cls.__name__}")


def classify(home, location, destination, mode_preference, direction, corridor) -> QueueKey:
    """
    Route one traveling agent into a ferry queue.

    Parameters:
    -----------
    home, location, destination : Settlement
        The agent's home, where it is now, and its precomputed destination
        (Vancouver for coastal residents).
    mode_preference : ModePreference
        Fixed bike willingness.
    direction : Direction
        OUTBOUND when leaving home, RETURN when heading back.
    corridor : Corridor
        Extent of the bike corridor.

    Returns:
    --------
    QueueKey
        The single queue the agent joins.

    Raises:
    -------
    UnclassifiedAgentError
        If the inputs fall outside the decision table.
    """
    context = (home, location, destination, mode_preference, corridor)
    home = _coerce(Settlement, home, context)
    location = _coerce(Settlement, location, context)
    destination = _coerce(Settlement, destination, context)
    mode_preference = _coerce(ModePreference, mode_preference, context)
    corridor = _coerce(Corridor, corridor, context)
    direction = _coerce(Direction, direction, context)
    context = (home, location, destination, mode_preference, corridor)

    if home.is_coastal == destination.is_coastal:
        raise UnclassifiedAgentError(*context, reason="trip does not cross the ferry")

    if direction is Direction.OUTBOUND:
        if location != home:
            raise UnclassifiedAgentError(*context, reason="outbound agent is not at home")
        leg_from, leg_to = home, destination
    else:
        if location == home:
            raise UnclassifiedAgentError(*context, reason="returning agent is already home")
        if location.is_coastal == home.is_coastal:
            raise UnclassifiedAgentError(*context, reason="returning agent is on the home side of the ferry")
        leg_from, leg_to = location, home

    coastal_end = leg_to if leg_to.is_coastal else leg_from
    covered = corridor.covers(coastal_end)

    vehicle = VEHICLE_TABLE[(mode_preference, covered)]
    return QUEUE_TABLE[(vehicle, leg_to is Settlement.VANCOUVER)]


def classify_agent(agent: Agent, direction: Direction, corridor: Corridor) -> QueueKey:
    """Classify an `Agent` record."""
    return classify(agent.home, agent.location, agent.destination,
                    agent.mode_preference, direction, corridor)


class RouteClassifier:
    """
    Vectorized classifier for a fixed corridor.

    The lookup table is filled by calling `classify` on every valid
    combination, so batch and scalar classification can never disagree.
    Cells that `classify` rejects stay at -1 and fail fast when hit.
    """

    def __init__(self, corridor: Corridor):
        """Build the lookup table for `corridor`."""
        self.corridor = Corridor.parse(corridor)
        n_settlements = len(Settlement)
        # [direction, home, far end of the trip, mode_preference]
        self.table = np.full(
            (len(Direction), n_settlements, n_settlements, len(ModePreference)), -1, dtype=np.int8
        )
        for direction, home, other, mode in itertools.product(
            Direction, Settlement, Settlement, ModePreference
        ):
            if home.is_coastal == other.is_coastal:
                continue
            if direction is Direction.OUTBOUND:
                location, destination = home, other
            else:
                location = other
                destination = Settlement.VANCOUVER if home.is_coastal else other
            self.table[direction, home, other, mode] = classify(
                home, location, destination, mode, direction, self.corridor
            )

    def classify_batch(self, indices: np.ndarray, direction: Direction,
                       home: np.ndarray, location: np.ndarray,
                       destination: np.ndarray, mode_preference: np.ndarray) -> np.ndarray:
        """
        Classify the agents in `indices` travelling in `direction`.

        Returns an array of QueueKey codes aligned with `indices`.
        """
        home_i = home[indices]
        location_i = location[indices]
        if direction is Direction.OUTBOUND:
            other = destination[indices]
            consistent = location_i == home_i
        else:
            other = location_i
            consistent = location_i != home_i
        keys = self.table[direction, home_i, other, mode_preference[indices]]

        bad = np.flatnonzero((keys < 0) | ~consistent)
        if len(bad):
            i = indices[bad[0]]
            # Re-run the scalar path to raise with a full diagnostic
            classify(home[i], location[i], destination[i], mode_preference[i], direction, self.corridor)
            raise UnclassifiedAgentError(home[i], location[i], destination[i],
                                         mode_preference[i], self.corridor)
        return keys
