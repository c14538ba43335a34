"""
Exceptions raised by the ferry demand simulation.
"""


class FerrySimulationError(Exception):
    """Base class for simulation errors."""


class ConfigurationError(FerrySimulationError, ValueError):
    """Raised when a configuration input is out of range or malformed."""


class InvariantViolationError(FerrySimulationError, RuntimeError):
    """Raised when an internal invariant is broken. Never recoverable."""


class UnclassifiedAgentError(InvariantViolationError):
    """Raised when an agent falls outside the mode/route decision table."""

    def __init__(self, home, location, destination, mode_preference, corridor, reason: str = ""):
        self.home = home
        self.location = location
        self.destination = destination
        self.mode_preference = mode_preference
        self.corridor = corridor
        self.reason = reason
        message = (
            "Failed to classify agent with "
            f"home={_name(home)}, location={_name(location)}, destination={_name(destination)}, "
            f"mode_preference={_name(mode_preference)}, corridor={_name(corridor)}"
        )
        if reason:
            message += f": {reason}"
        super().__init__(message)

    def __reduce__(self):
        # Keeps the error intact when raised inside a worker process
        return (self.__class__, self.agent_tuple + (self.reason,))

    @property
    def agent_tuple(self):
        return (self.home, self.location, self.destination, self.mode_preference, self.corridor)


def _name(value):
    return getattr(value, 'name', value)
