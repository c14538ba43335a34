"""
Simulation components.

Contains specialized modules for the stochastic processes, trip decisions,
mode/route classification and ferry boarding.
"""

from . import stochastic_generators
from . import population_builder
from . import trip_decision
from . import route_classifier
from . import ferry_scheduler

__all__ = [
    'stochastic_generators',
    'population_builder',
    'trip_decision',
    'route_classifier',
    'ferry_scheduler'
]
