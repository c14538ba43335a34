"""
Core data models and structures for the ferry demand simulation.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional

from .exceptions import ConfigurationError, InvariantViolationError


class Settlement(IntEnum):
    """Settlements along the chain, ordered by distance from the ferry."""
    VANCOUVER = 0
    GIBSONS = 1
    ROBERTS_CREEK = 2
    SECHELT = 3

    @property
    def is_coastal(self) -> bool:
        return self is not Settlement.VANCOUVER


COASTAL_SETTLEMENTS = (Settlement.GIBSONS, Settlement.ROBERTS_CREEK, Settlement.SECHELT)


class ModePreference(IntEnum):
    """Willingness of an agent to cross by bicycle."""
    NEVER_BIKES = 0
    ALWAYS_BIKES = 1
    BIKES_IF_PATH_AVAILABLE = 2


class Corridor(IntEnum):
    """
    How far the bicycle corridor extends from the Gibsons terminal.

    The value is the furthest coastal settlement reached, so a corridor
    covers a settlement when its value is at least the settlement's.
    """
    NONE = 0
    TO_ROBERTS_CREEK = 2
    TO_SECHELT = 3

    def covers(self, settlement: Settlement) -> bool:
        settlement = Settlement(settlement)
        if not settlement.is_coastal or self is Corridor.NONE:
            return False
        return int(settlement) <= int(self)

    @classmethod
    def parse(cls, value) -> "Corridor":
        """Parse a corridor from a name, alias or enum value."""
        if isinstance(value, Corridor):
            return value
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                raise ConfigurationError(f"Unknown corridor value {value}")
        aliases = {
            'n': cls.NONE, 'none': cls.NONE,
            'r': cls.TO_ROBERTS_CREEK, 'roberts_creek': cls.TO_ROBERTS_CREEK,
            'to_roberts_creek': cls.TO_ROBERTS_CREEK,
            's': cls.TO_SECHELT, 'sechelt': cls.TO_SECHELT, 'to_sechelt': cls.TO_SECHELT,
        }
        key = str(value).strip().lower()
        if key not in aliases:
            raise ConfigurationError(
                f"Unknown corridor '{value}'. Use 'none', 'roberts_creek' or 'sechelt'."
            )
        return aliases[key]


class Direction(IntEnum):
    """Leg of a trip: leaving home or going back."""
    OUTBOUND = 0
    RETURN = 1


class QueueKey(IntEnum):
    """Ferry queues. Outbound sails toward the coast, return toward Vancouver."""
    CAR_OUTBOUND = 0
    BIKE_OUTBOUND = 1
    CAR_RETURN = 2
    BIKE_RETURN = 3

    @property
    def is_bike(self) -> bool:
        return self in (QueueKey.BIKE_OUTBOUND, QueueKey.BIKE_RETURN)


QUEUE_COLUMNS = {
    QueueKey.CAR_OUTBOUND: 'car_outbound',
    QueueKey.BIKE_OUTBOUND: 'bike_outbound',
    QueueKey.CAR_RETURN: 'car_return',
    QueueKey.BIKE_RETURN: 'bike_return',
}


@dataclass(frozen=True)
class Agent:
    """Record view of one agent (a household of `model_scale` people)."""
    index: int
    home: Settlement
    location: Settlement
    mode_preference: ModePreference
    balk_point: float
    destination: Settlement

    @property
    def is_on_vacation(self) -> bool:
        return self.location != self.home


@dataclass
class SimulationConfig:
    """Configuration for a simulation run."""
    corridor: Corridor = Corridor.NONE
    p_bike_if_path: float = 0.0
    p_always_bike: float = 0.01
    n_iterations: int = 1
    seed: Optional[int] = None
    n_workers: int = 1

    model_scale: float = 2.7  # people per agent
    populations: Dict[Settlement, float] = field(default_factory=lambda: {
        Settlement.VANCOUVER: 2.64e6,
        Settlement.GIBSONS: 5.0e3,
        Settlement.ROBERTS_CREEK: 3.0e3,
        Settlement.SECHELT: 1.0e4,
    })
    cars_per_ferry: Optional[int] = None  # derived from 311 people when unset
    bikes_per_ferry: Optional[int] = None  # derived from 1000 people when unset
    ferries_per_day: int = 4

    days_per_year: int = 365
    peak_start_day: int = 151
    peak_end_day: int = 243  # inclusive
    peak_trip_rate: float = 0.0025  # per person per day
    off_peak_trip_rate: float = 0.00042
    mean_trip_nights: float = 3.3

    balking_enabled: bool = True
    mean_balk_point: float = 4.0  # sailings

    def __post_init__(self):
        self.corridor = Corridor.parse(self.corridor)
        try:
            self.populations = {Settlement(k) if not isinstance(k, str) else Settlement[k.upper()]: float(v)
                                for k, v in self.populations.items()}
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Unknown settlement in populations: {e}")
        if (isinstance(self.model_scale, bool) or not isinstance(self.model_scale, (int, float))
                or self.model_scale <= 0):
            raise ConfigurationError(f"model_scale must be a positive number, got {self.model_scale!r}")
        if self.cars_per_ferry is None:
            self.cars_per_ferry = int(311 / self.model_scale)
        if self.bikes_per_ferry is None:
            self.bikes_per_ferry = int(1000 / self.model_scale)

    def capacity_for(self, key: QueueKey) -> int:
        return self.bikes_per_ferry if QueueKey(key).is_bike else self.cars_per_ferry

    def is_peak_day(self, day: int) -> bool:
        return self.peak_start_day <= day <= self.peak_end_day

    def agent_counts(self) -> Dict[Settlement, int]:
        """Number of agents per settlement after scaling."""
        return {s: int(round(self.populations[s] / self.model_scale)) for s in Settlement}

    def validate(self) -> None:
        """Reject out-of-range inputs before the core runs."""
        for name in ('p_bike_if_path', 'p_always_bike'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be a number between 0 and 1, got {value!r}")

        if isinstance(self.n_iterations, bool) or not isinstance(self.n_iterations, (int, np.integer)):
            raise ConfigurationError(f"n_iterations must be an integer, got {self.n_iterations!r}")
        if not 1 <= self.n_iterations <= 100:
            raise ConfigurationError(f"n_iterations must be between 1 and 100, got {self.n_iterations}")

        if self.model_scale <= 0:
            raise ConfigurationError("model_scale must be positive")
        missing = [s.name for s in Settlement if s not in self.populations]
        if missing:
            raise ConfigurationError(f"Missing populations for: {missing}")
        if any(p < 0 for p in self.populations.values()):
            raise ConfigurationError("Populations must be non-negative")
        if sum(self.populations[s] for s in COASTAL_SETTLEMENTS) <= 0:
            raise ConfigurationError("At least one coastal settlement must be populated")

        for name in ('cars_per_ferry', 'bikes_per_ferry', 'ferries_per_day', 'n_workers',
                     'days_per_year', 'peak_start_day', 'peak_end_day'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")

        if self.cars_per_ferry < 0 or self.bikes_per_ferry < 0:
            raise ConfigurationError("Ferry capacities must be non-negative")
        if self.ferries_per_day < 1:
            raise ConfigurationError("ferries_per_day must be at least 1")
        if self.n_workers < 1:
            raise ConfigurationError("n_workers must be at least 1")

        if self.days_per_year < 1:
            raise ConfigurationError("days_per_year must be positive")
        if not 0 <= self.peak_start_day <= self.peak_end_day < self.days_per_year:
            raise ConfigurationError("Peak season must lie inside the simulated year")
        for name in ('peak_trip_rate', 'off_peak_trip_rate'):
            rate = getattr(self, name) * self.model_scale
            if not 0.0 <= rate <= 1.0:
                raise ConfigurationError(f"{name} scaled by model_scale must be a probability, got {rate}")
        if self.mean_trip_nights < 0:
            raise ConfigurationError("mean_trip_nights must be non-negative")
        if self.balking_enabled and self.mean_balk_point <= 0:
            raise ConfigurationError("mean_balk_point must be positive when balking is enabled")


class Population:
    """
    Read-only population template shared by every iteration.

    Holds the fixed per-agent attributes as parallel numpy arrays. The arrays
    are write-protected so worker processes can share them safely.
    """

    def __init__(self, home: np.ndarray, mode_preference: np.ndarray,
                 balk_point: np.ndarray, destination: np.ndarray):
        sizes = {len(home), len(mode_preference), len(balk_point), len(destination)}
        if len(sizes) != 1:
            raise InvariantViolationError(
                f"Population arrays have mismatched sizes: home={len(home)}, "
                f"mode_preference={len(mode_preference)}, balk_point={len(balk_point)}, "
                f"destination={len(destination)}"
            )
        self.home = np.array(home, dtype=np.int8)
        self.mode_preference = np.array(mode_preference, dtype=np.int8)
        self.balk_point = np.array(balk_point, dtype=np.float64)
        self.destination = np.array(destination, dtype=np.int8)
        for array in (self.home, self.mode_preference, self.balk_point, self.destination):
            array.flags.writeable = False

    def __len__(self) -> int:
        return len(self.home)

    def agent(self, index: int, state: "PopulationState" = None) -> Agent:
        location = self.home[index] if state is None else state.location[index]
        return Agent(
            index=index,
            home=Settlement(int(self.home[index])),
            location=Settlement(int(location)),
            mode_preference=ModePreference(int(self.mode_preference[index])),
            balk_point=float(self.balk_point[index]),
            destination=Settlement(int(self.destination[index])),
        )

    def counts_by_home(self) -> Dict[Settlement, int]:
        counts = np.bincount(self.home, minlength=len(Settlement))
        return {s: int(counts[s]) for s in Settlement}

    def counts_by_mode(self) -> Dict[ModePreference, int]:
        counts = np.bincount(self.mode_preference, minlength=len(ModePreference))
        return {m: int(counts[m]) for m in ModePreference}


class PopulationState:
    """Mutable per-iteration agent state. Everyone starts at home."""

    def __init__(self, population: Population):
        size = len(population)
        self.location = population.home.copy()
        self.location.flags.writeable = True
        self.trip_length = np.zeros(size, dtype=np.int32)
        self.queued = np.zeros(size, dtype=bool)
        self.enqueued_at = np.zeros(size, dtype=np.int64)

    def __len__(self) -> int:
        return len(self.location)

    def check_matches(self, population: Population) -> None:
        """Fail fast if the state does not line up with the population."""
        size = len(population)
        for name in ('location', 'trip_length', 'queued', 'enqueued_at'):
            if len(getattr(self, name)) != size:
                raise InvariantViolationError(
                    f"State array '{name}' has {len(getattr(self, name))} entries "
                    f"but the population has {size} agents"
                )

    def on_vacation(self, population: Population) -> np.ndarray:
        return self.location != population.home

    def agent(self, population: Population, index: int) -> Agent:
        return population.agent(index, self)


class SimulationResults:
    """
    Daily ferry counts for every iteration.

    Arrays are shaped (n_iterations, days, 4) with the last axis ordered as
    QueueKey, so `counts[iteration, day]` gives that day's
    (car_outbound, bike_outbound, car_return, bike_return) passengers.
    Counts are daily, not cumulative.
    """

    def __init__(self, counts: np.ndarray, balked: np.ndarray = None,
                 queue_lengths: np.ndarray = None):
        self.counts = np.asarray(counts, dtype=np.int64)
        if self.counts.ndim != 3 or self.counts.shape[2] != len(QueueKey):
            raise InvariantViolationError(
                f"Result counts must be shaped (iterations, days, {len(QueueKey)}), got {self.counts.shape}"
            )
        self.balked = np.zeros_like(self.counts) if balked is None else np.asarray(balked, dtype=np.int64)
        self.queue_lengths = (np.zeros_like(self.counts) if queue_lengths is None
                              else np.asarray(queue_lengths, dtype=np.int64))
        for name in ('balked', 'queue_lengths'):
            if getattr(self, name).shape != self.counts.shape:
                raise InvariantViolationError(f"'{name}' does not match the shape of the counts")

    @property
    def n_iterations(self) -> int:
        return self.counts.shape[0]

    @property
    def n_days(self) -> int:
        return self.counts.shape[1]

    def __getitem__(self, item):
        return self.counts[item]

    def day_counts(self, day: int, iteration: int = 0) -> Dict[str, int]:
        return {QUEUE_COLUMNS[k]: int(self.counts[iteration, day, k]) for k in QueueKey}

    def to_frame(self) -> pd.DataFrame:
        """Long table with one row per (day, iteration)."""
        iterations, days = np.meshgrid(
            np.arange(self.n_iterations), np.arange(self.n_days), indexing='ij'
        )
        data = {'day': days.ravel(), 'iteration': iterations.ravel()}
        for key in QueueKey:
            data[QUEUE_COLUMNS[key]] = self.counts[:, :, key].ravel()
        for key in QueueKey:
            data[f"{QUEUE_COLUMNS[key]}_balked"] = self.balked[:, :, key].ravel()
        for key in QueueKey:
            data[f"{QUEUE_COLUMNS[key]}_queue"] = self.queue_lengths[:, :, key].ravel()
        return pd.DataFrame(data).sort_values(['day', 'iteration']).reset_index(drop=True)

    def to_wide_frame(self, cumulative: bool = False) -> pd.DataFrame:
        """
        One row per day with car and bike trips to the coast per iteration.

        With a single iteration the columns are
        `Day, Car Trips to Coast, Bike Trips to Coast`; otherwise each
        iteration n contributes `Car Trips n, Bike Trips n`.
        """
        car = self.counts[:, :, QueueKey.CAR_OUTBOUND]
        bike = self.counts[:, :, QueueKey.BIKE_OUTBOUND]
        if cumulative:
            car = car.cumsum(axis=1)
            bike = bike.cumsum(axis=1)

        columns = {'Day': np.arange(self.n_days)}
        if self.n_iterations == 1:
            columns['Car Trips to Coast'] = car[0]
            columns['Bike Trips to Coast'] = bike[0]
        else:
            for n in range(self.n_iterations):
                columns[f'Car Trips {n}'] = car[n]
                columns[f'Bike Trips {n}'] = bike[n]
        return pd.DataFrame(columns)

    def mean_daily(self) -> pd.DataFrame:
        """Per-day mean across iterations."""
        means = self.counts.mean(axis=0)
        frame = pd.DataFrame({QUEUE_COLUMNS[k]: means[:, k] for k in QueueKey})
        frame.index.name = 'day'
        return frame
