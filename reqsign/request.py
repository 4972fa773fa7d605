"""
Immutable request descriptions handed to and returned by the signer.
"""

import io
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, BinaryIO, Iterable, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl, quote, urlsplit

from .endpoints import endpoint_host
from .exceptions import InvalidRequestError

Headers = Mapping[str, str]
QueryPairs = Tuple[Tuple[str, str], ...]
Query = Union[str, Mapping[str, Any], Sequence[Tuple[str, Any]], None]
Body = Union[bytes, bytearray, str, BinaryIO, None]

DEFAULT_PORTS = {'http': 80, 'https': 443}


def normalize_query(query: Query) -> QueryPairs:
    """Turn any accepted query form into a tuple of ``(name, value)`` pairs.

    Raw strings are parsed as ``application/x-www-form-urlencoded``, so
    ``%XX`` escapes and ``+`` are decoded. Mapping values that are lists or
    tuples expand into repeated parameters.
    """
    if not query:
        return ()
    if isinstance(query, str):
        return tuple(parse_qsl(query.lstrip('?'), keep_blank_values=True))

    items: Iterable[Tuple[str, Any]]
    if isinstance(query, Mapping):
        items = query.items()
    else:
        items = query

    pairs = []
    for item in items:
        try:
            name, value = item
        except (TypeError, ValueError):
            raise InvalidRequestError(f"Query parameters must be (name, value) pairs, got {item!r}")
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), _query_value(v)) for v in value)
        else:
            pairs.append((str(name), _query_value(value)))
    return tuple(pairs)


def _query_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError:
            raise InvalidRequestError(f"Query value {value!r} is not valid UTF-8")
    return str(value)


def encode_query(pairs: QueryPairs) -> str:
    """Serialize pairs in their given order, percent-encoding everything but ``-_.~``."""
    return '&'.join(f"{quote(k, safe='-_.~')}={quote(v, safe='-_.~')}" for k, v in pairs)


def host_from_url(url: str) -> str:
    """Host header value for a URL: lower-case, default port dropped, IPv6 bracketed."""
    parts = urlsplit(url)
    host = parts.hostname
    if not host:
        raise InvalidRequestError(f"URL has no host: {url!r}")
    if ':' in host:
        host = f'[{host}]'
    try:
        port = parts.port
    except ValueError:
        raise InvalidRequestError(f"URL has an invalid port: {url!r}")
    if port is not None and port != DEFAULT_PORTS.get(parts.scheme):
        host = f'{host}:{port}'
    return host


@dataclass(frozen=True)
class RequestDescriptor:
    """An outbound HTTP request to be signed.

    ``host`` is the value sent in the Host header (including a non-default
    port). ``service`` and ``region`` may be left unset when the credentials
    carry them or when they can be derived from a well-known AWS host.
    """

    host: str
    method: str = 'GET'
    path: str = '/'
    query: Query = ()
    headers: Headers = field(default_factory=dict)
    body: Body = None
    service: Optional[str] = None
    region: Optional[str] = None
    scheme: str = 'https'

    def __post_init__(self) -> None:
        headers = self.headers
        if not isinstance(headers, Mapping):
            raise InvalidRequestError(f"headers must be a mapping, got {type(headers).__name__}")
        object.__setattr__(self, 'headers', MappingProxyType(dict(headers)))
        object.__setattr__(self, 'query', normalize_query(self.query))
        object.__setattr__(self, 'method', (self.method or 'GET').upper())
        object.__setattr__(self, 'path', self.path or '/')

        body = self.body
        if isinstance(body, str):
            object.__setattr__(self, 'body', body.encode('utf-8'))
        elif isinstance(body, bytearray):
            object.__setattr__(self, 'body', bytes(body))
        elif body is not None and not isinstance(body, bytes) and not _is_seekable(body):
            raise InvalidRequestError(
                f"body must be bytes, str or a seekable binary file, got {type(body).__name__}"
            )

    @classmethod
    def from_url(cls, url: str, method: str = 'GET', headers: Optional[Headers] = None,
                 body: Body = None, service: Optional[str] = None,
                 region: Optional[str] = None) -> 'RequestDescriptor':
        parts = urlsplit(url)
        return cls(
            host=host_from_url(url),
            method=method,
            path=parts.path or '/',
            query=parts.query,
            headers=headers or {},
            body=body,
            service=service,
            region=region,
            scheme=parts.scheme or 'https',
        )

    @classmethod
    def for_service(cls, service: str, region: str, method: str = 'GET', path: str = '/',
                    query: Query = (), headers: Optional[Headers] = None,
                    body: Body = None) -> 'RequestDescriptor':
        return cls(
            host=endpoint_host(service, region),
            method=method,
            path=path,
            query=query,
            headers=headers or {},
            body=body,
            service=service,
            region=region,
        )

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lname = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lname:
                return value
        return default

    @property
    def url(self) -> str:
        url = f"{self.scheme}://{self.host}{self.path}"
        if self.query:
            url += '?' + encode_query(self.query)
        return url


@dataclass(frozen=True)
class SignedRequest(RequestDescriptor):
    """A :class:`RequestDescriptor` carrying signature material.

    In header mode ``headers`` holds the Authorization header; in query mode
    (presigned URLs) ``query`` ends with ``X-Amz-Signature``.
    """

    timestamp: str = ''
    credential_scope: str = ''
    signed_headers: str = ''
    signature: str = ''
    canonical_request: str = field(default='', repr=False)
    string_to_sign: str = field(default='', repr=False)


def _is_seekable(body: Any) -> bool:
    if isinstance(body, io.IOBase):
        return body.seekable()
    return hasattr(body, 'read') and hasattr(body, 'seek') and hasattr(body, 'tell')
