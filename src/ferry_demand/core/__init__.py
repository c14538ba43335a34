"""
Core simulation components.

Contains the simulation engine, data models and exceptions.
"""

from . import exceptions
from . import data_models
from . import simulation_engine

__all__ = ['exceptions', 'data_models', 'simulation_engine']
