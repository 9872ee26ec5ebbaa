"""Exceptions raised by the HTM algorithms.

Everything derives from ValueError so callers already guarding against bad
values keep working.
"""


class ParameterValidationError(ValueError):
    """A configuration value is invalid or inconsistent."""


class InvalidSpatialPoolerParamValueError(ParameterValidationError):
    """Raised by SpatialPooler.init when the pooler cannot be built."""


class InvalidTemporalMemoryParamValueError(ParameterValidationError):
    """Raised by TemporalMemory.init when the memory cannot be built."""


class InputContractError(ValueError):
    """An input handed to compute does not have the expected shape or order."""

    def __init__(self, message: str, expected=None, actual=None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual
