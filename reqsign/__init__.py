"""
AWS Signature Version 4 - Standalone Request Signing

This package signs HTTP requests for AWS APIs with long-term or session
credentials, either with an Authorization header or as a presigned URL,
without depending on botocore for signing operations.
"""

from .credentials import Credentials, from_environment, resolve_credentials
from .endpoints import endpoint_host, parse_host
from .exceptions import InvalidRequestError, NoCredentialsError, SigningError
from .request import Headers, RequestDescriptor, SignedRequest
from .sigv4 import UNSIGNED_PAYLOAD, Service, SigV4Signer, presign, sign

__version__ = "0.1.0"
__all__ = [
    "Credentials",
    "Headers",
    "InvalidRequestError",
    "NoCredentialsError",
    "RequestDescriptor",
    "Service",
    "SigV4Signer",
    "SignedRequest",
    "SigningError",
    "UNSIGNED_PAYLOAD",
    "endpoint_host",
    "from_environment",
    "parse_host",
    "presign",
    "resolve_credentials",
    "sign",
]
