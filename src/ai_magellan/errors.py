class MagellanError(Exception):
    """Base class for errors raised by the listing health pipeline."""


class AuthorizationError(MagellanError):
    """Missing or incorrect shared secret on an admin endpoint."""


class PersistenceError(MagellanError):
    """A single listing's status write failed."""

    def __init__(self, listing_id: int, reason: str):
        super().__init__(f"listing {listing_id}: {reason}")
        self.listing_id = listing_id
        self.reason = reason
