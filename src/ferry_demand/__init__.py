"""
Sunshine Coast Ferry Demand Simulation

An agent-based model of seasonal car and bicycle trips across the
Vancouver - Gibsons ferry under different bike corridor scenarios.
"""

__version__ = "1.0.0"
__author__ = "Ferry Demand Simulation Team"

from .core import data_models, exceptions, simulation_engine
from .components import stochastic_generators, population_builder, trip_decision, route_classifier, ferry_scheduler

__all__ = [
    'data_models',
    'exceptions',
    'simulation_engine',
    'stochastic_generators',
    'population_builder',
    'trip_decision',
    'route_classifier',
    'ferry_scheduler'
]
