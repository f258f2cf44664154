"""Exception hierarchy for librus_ics.

Upstream failures are split by whether a fresh login could help, so the
retry policy in :mod:`librus_ics.core.upstream_session` can react to
authentication problems without retrying plain network errors.
"""


class LibrusIcsError(Exception):
    """Base exception for all librus_ics errors."""


class UpstreamError(LibrusIcsError):
    """The upstream register could not be reached or returned an error.

    Raised when:
    - The HTTP request fails at the transport level
    - The gateway answers with a non-auth error status (5xx, 404, ...)
    - The response body is not the JSON shape we expect

    Fragments are left stale; the next scheduled cycle tries again.
    """


class UpstreamAuthError(UpstreamError):
    """Credentials were rejected or the upstream session expired.

    Triggers token invalidation and a single retry with a forced login.
    """


class FormatError(LibrusIcsError):
    """The calendar encoder rejected the record set.

    The previously compiled artifact stays in place.
    """


class NotReadyError(LibrusIcsError):
    """No lessons artifact exists, even after an on-demand refresh.

    Should result in HTTP 503 so clients retry shortly.
    """
