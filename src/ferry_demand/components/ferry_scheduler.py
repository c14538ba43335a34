"""
Ferry queues and capacity-constrained boarding across the day's sailings.
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Dict

from ..core.data_models import Population, PopulationState, QueueKey, SimulationConfig
from ..core.exceptions import InvariantViolationError

logger = logging.getLogger(__name__)


class FerryQueue:
    """FIFO queue of agent indices for one mode and sailing direction."""

    def __init__(self, key: QueueKey):
        self.key = QueueKey(key)
        self._agents = np.empty(0, dtype=np.int64)

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def agents(self) -> np.ndarray:
        """Queued agent indices, front first (read-only view)."""
        view = self._agents.view()
        view.flags.writeable = False
        return view

    def push(self, indices: np.ndarray) -> None:
        if len(indices):
            self._agents = np.concatenate([self._agents, np.asarray(indices, dtype=np.int64)])

    def pop_front(self, count: int) -> np.ndarray:
        count = min(count, len(self._agents))
        front, self._agents = self._agents[:count], self._agents[count:]
        return front

    def remove(self, mask: np.ndarray) -> np.ndarray:
        """Drop the agents flagged by `mask`, keeping the others in order."""
        removed = self._agents[mask]
        self._agents = self._agents[~mask]
        return removed

    def clear(self) -> None:
        self._agents = np.empty(0, dtype=np.int64)


@dataclass
class DailyTally:
    """Passengers boarded, agents balked and queue lengths for one day."""
    boarded: Dict[QueueKey, int] = field(default_factory=lambda: {k: 0 for k in QueueKey})
    balked: Dict[QueueKey, int] = field(default_factory=lambda: {k: 0 for k in QueueKey})
    queue_lengths: Dict[QueueKey, int] = field(default_factory=lambda: {k: 0 for k in QueueKey})


class FerryBoardingScheduler:
    """
    Drains the four ferry queues sailing by sailing.

    Cars and bikes use separate capacity pools, and each queue boards
    independently from its front. Agents that wait more sailings than
    their balk point leave before capacity is handed out.
    """

    def __init__(self, config: SimulationConfig):
        """Initialize the scheduler with empty queues."""
        self.config = config
        self.queues = {key: FerryQueue(key) for key in QueueKey}
        self.sailing_counter = 0  # sailings run so far in this iteration

    def reset(self) -> None:
        """Empty every queue and restart the sailing count."""
        for queue in self.queues.values():
            queue.clear()
        self.sailing_counter = 0

    def enqueue(self, key: QueueKey, indices: np.ndarray, state: PopulationState) -> None:
        """Append agents to the back of a queue in the given order."""
        if not len(indices):
            return
        if state.queued[indices].any():
            raise InvariantViolationError(f"Agents enqueued twice into {QueueKey(key).name}")
        state.queued[indices] = True
        state.enqueued_at[indices] = self.sailing_counter
        self.queues[QueueKey(key)].push(indices)

    def queue_lengths(self) -> Dict[QueueKey, int]:
        return {key: len(queue) for key, queue in self.queues.items()}

    def _balk(self, population: Population, state: PopulationState, tally: DailyTally) -> None:
        for key, queue in self.queues.items():
            if not len(queue):
                continue
            agents = queue.agents
            waited = self.sailing_counter - state.enqueued_at[agents]
            balking = waited > population.balk_point[agents]
            if balking.any():
                balkers = queue.remove(balking)
                # Their decision carries over to the next day
                state.queued[balkers] = False
                tally.balked[key] += len(balkers)

    def run_sailing(self, population: Population, state: PopulationState, tally: DailyTally) -> Dict[QueueKey, int]:
        """
        Run one sailing: balk, then board up to capacity from every queue.

        Returns:
        --------
        Dict[QueueKey, int]
            Agents boarded per queue on this sailing.
        """
        if self.config.balking_enabled:
            self._balk(population, state, tally)

        boarded_now = {}
        for key, queue in self.queues.items():
            boarded = queue.pop_front(self.config.capacity_for(key))
            if len(boarded):
                leaving_home = state.location[boarded] == population.home[boarded]
                state.location[boarded] = np.where(
                    leaving_home, population.destination[boarded], population.home[boarded]
                )
                state.queued[boarded] = False
            boarded_now[key] = len(boarded)
            tally.boarded[key] += len(boarded)

        self.sailing_counter += 1
        return boarded_now

    def run_day(self, population: Population, state: PopulationState) -> DailyTally:
        """Run all of the day's sailings and return the day's tally."""
        tally = DailyTally()
        for _ in range(self.config.ferries_per_day):
            self.run_sailing(population, state, tally)
        tally.queue_lengths = self.queue_lengths()
        return tally
