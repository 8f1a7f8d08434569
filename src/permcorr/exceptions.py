"""Exception types raised by permcorr."""

from __future__ import annotations


class InvalidInput(ValueError):
    """Raised when an argument fails boundary validation.

    Attributes:
        argument: Name of the offending parameter.
    """

    def __init__(self, argument: str, message: str):
        self.argument = argument
        super().__init__(f"{argument}: {message}")


class PermutationCancelled(RuntimeError):
    """Raised when a permutation run is cancelled between iterations."""
