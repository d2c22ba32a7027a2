"""
Service-layer exceptions.

Access outcomes are returned as AccessOutcome values and never raised.
These exceptions cover owner-side management failures and fatal
infrastructure errors; routers map them to HTTP status codes.
"""


class ShareLinkError(Exception):
    """Base class for share link service errors."""


class ShareLinkValidationError(ShareLinkError):
    """Rejected create/update input (400)."""


class ShareLinkPermissionError(ShareLinkError):
    """Caller does not own the link or the snippet (403)."""


class ShareLinkNotFoundError(ShareLinkError):
    """Unknown share link id (404)."""


class ShareLinkRevokedError(ShareLinkError):
    """Mutation attempted on a revoked link (409)."""


class TokenGenerationError(ShareLinkError):
    """Token uniqueness could not be satisfied after bounded retries. Fatal."""


class PasswordHashingError(ShareLinkError):
    """The password hash primitive failed. Fatal."""
