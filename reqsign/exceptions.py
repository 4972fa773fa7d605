class SigningError(Exception):
    """Base class for every error raised by reqsign."""


class InvalidRequestError(SigningError, ValueError):
    """The request cannot be signed as described.

    Raised for a missing host, a service or region that can neither be taken
    from the request or credentials nor derived from the host, and header or
    query values that cannot be canonicalized.
    """


class NoCredentialsError(SigningError):
    """No usable access key / secret key pair was supplied or found."""
