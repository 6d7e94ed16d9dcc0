"""Exception taxonomy for registration processing."""

from __future__ import annotations


class RegistrationError(Exception):
    """Base class for every failure raised while processing a bundle."""


class InvalidBundle(RegistrationError):
    """The webhook envelope is missing structural fields."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid webhook envelope: " + "; ".join(errors))


class MissingRequiredResource(RegistrationError):
    """The bundle lacks a resource nothing downstream can do without."""

    def __init__(self, missing: list[str], bundle_id: str | None = None):
        self.missing = missing
        self.bundle_id = bundle_id
        super().__init__(
            f"Missing required data in bundle {bundle_id}: {', '.join(missing)}"
        )


class AmbiguousResourceMatch(RegistrationError):
    """A predicate that should select one entry matched several."""

    def __init__(self, label: str, count: int):
        self.label = label
        self.count = count
        super().__init__(f"Expected a single {label} entry, found {count}")


class IdentityLookupFailure(RegistrationError):
    """The identity store could not be queried."""


class PersistenceError(RegistrationError):
    """The write-set could not be committed; the transaction was rolled back."""
