from __future__ import annotations


class VivariumError(Exception):
    """Base class for errors raised by the shared environment."""


class LoadError(VivariumError):
    """A model asset could not be fetched (missing, unreadable or timed out)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to load {path!r}: {reason}")
        self.path = path
        self.reason = reason


class AssetMalformedError(VivariumError):
    """A fetched asset does not contain the expected scene graph."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"malformed asset {path!r}: {reason}")
        self.path = path
        self.reason = reason


class DescriptorError(VivariumError, ValueError):
    """An inbound creature payload cannot be turned into a descriptor."""


class CapacityExceededRecoverable(VivariumError):
    """Raised inside the population store when it is full; resolved by eviction."""

    def __init__(self, capacity: int):
        super().__init__(f"population at capacity ({capacity})")
        self.capacity = capacity
