"""Error taxonomy for policy loading and attribute resolution."""
from typing import Iterable, List, Optional


class PolicyGateError(Exception):
    """Base class for errors raised by the authorization core."""


class InvalidPolicy(PolicyGateError):
    """A policy document failed validation; the active snapshot is unchanged."""

    def __init__(self, errors: Iterable[str], message: Optional[str] = None):
        self.errors: List[str] = list(errors)
        if message is None:
            message = "Invalid policy: " + "; ".join(self.errors)
        super().__init__(message)


class UnknownAttribute(PolicyGateError):
    """Strict resolution met attributes the schema does not declare."""

    def __init__(self, names: Iterable[str], owner: str):
        self.names: List[str] = sorted(names)
        self.owner = owner
        super().__init__(
            f"Unknown attribute(s) for '{owner}': {', '.join(self.names)}"
        )
