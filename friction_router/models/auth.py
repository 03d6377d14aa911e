"""Identity types produced by the identity verifier."""
from dataclasses import dataclass


@dataclass(frozen=True)
class VerifiedIdentity:
    """
    A caller whose bearer credential has been verified.

    Attributes:
        user_id: Stable, opaque subject identifier from the identity provider
        email: Verified email address (never logged)
        is_admin: True when email matches the configured administrator
    """
    user_id: str
    email: str
    is_admin: bool = False
