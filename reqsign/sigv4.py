import calendar
import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone
from email.utils import formatdate
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import quote, unquote

from .credentials import Credentials
from .endpoints import parse_host
from .exceptions import InvalidRequestError
from .request import Body, Headers, QueryPairs, RequestDescriptor, SignedRequest

logger = logging.getLogger(__name__)

ALGORITHM = 'AWS4-HMAC-SHA256'
TERMINATOR = 'aws4_request'
SIGV4_TIMESTAMP = '%Y%m%dT%H%M%SZ'
UNSIGNED_PAYLOAD = 'UNSIGNED-PAYLOAD'
EMPTY_SHA256_HASH = hashlib.sha256(b'').hexdigest()
PAYLOAD_BUFFER = 1024 * 1024

DEFAULT_EXPIRES = 3600
MAX_EXPIRES = 7 * 24 * 3600

CONTENT_SHA256_HEADER = 'X-Amz-Content-SHA256'

# Excluded from the signature.
UNSIGNED_HEADERS = frozenset({
    'authorization',
    'expect',
    'transfer-encoding',
    'user-agent',
    'x-amzn-trace-id',
})

# Replaced on every (re-)signing.
_STALE_HEADERS = frozenset({'authorization', 'x-amz-date', 'x-amz-security-token'})
_STALE_QUERY = frozenset({
    'X-Amz-Algorithm',
    'X-Amz-Credential',
    'X-Amz-Date',
    'X-Amz-Expires',
    'X-Amz-Security-Token',
    'X-Amz-Signature',
    'X-Amz-SignedHeaders',
})

_HEADER_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0a-\x1f\x7f]')

Clock = Callable[[], datetime]


class Service(str, Enum):
    CLOUDFRONT = 'cloudfront'
    DYNAMODB = 'dynamodb'
    EC2 = 'ec2'
    EXECUTE_API = 'execute-api'
    IAM = 'iam'
    LAMBDA = 'lambda'
    MONITORING = 'monitoring'
    ROUTE53 = 'route53'
    S3 = 's3'
    SES = 'ses'
    SNS = 'sns'
    SQS = 'sqs'
    STS = 'sts'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(now: datetime) -> str:
    """Render ``now`` as ``YYYYMMDDTHHMMSSZ``; naive datetimes are taken as UTC."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(SIGV4_TIMESTAMP)


def _service_name(service: Union[str, Service, None]) -> Optional[str]:
    if isinstance(service, Service):
        return service.value
    return service


# Canonicalization


def _require_utf8(value: str, field: str) -> None:
    try:
        value.encode('utf-8')
    except UnicodeEncodeError:
        raise InvalidRequestError(f"{field} cannot be encoded as UTF-8: {value!r}")


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """Percent-encode everything outside ``A-Za-z0-9-_.~`` (UTF-8, uppercase hex)."""
    return quote(value, safe='-_.~' if encode_slash else '-_.~/')


def canonical_uri(path: str, service: str) -> str:
    """Canonical URI for ``path``.

    Dot and empty segments are kept as sent. S3 decodes the path once and
    encodes it once; every other service encodes the path as given, so an
    existing ``%20`` becomes ``%2520``.
    """
    if not path:
        return '/'
    _require_utf8(path, 'Request path')
    if not path.startswith('/'):
        path = '/' + path
    if service == Service.S3.value:
        path = unquote(path)
    return uri_encode(path, encode_slash=False)


def canonical_query_string(pairs: Iterable[Tuple[str, str]]) -> str:
    encoded = []
    for name, value in pairs:
        if _CONTROL_CHARS_RE.search(name) or _CONTROL_CHARS_RE.search(value):
            raise InvalidRequestError(f"Query parameter {name!r} contains control characters")
        _require_utf8(name, 'Query parameter name')
        _require_utf8(value, f"Query parameter {name!r}")
        encoded.append((uri_encode(name), uri_encode(value)))
    # Sort by encoded name, then by encoded value for repeated names.
    return '&'.join(f'{k}={v}' for k, v in sorted(encoded))


def headers_to_sign(headers: Headers) -> Dict[str, str]:
    """Lower-cased, trimmed headers that take part in the signature."""
    result: Dict[str, str] = {}
    seen = set()
    for name, value in headers.items():
        if not isinstance(name, str) or not _HEADER_NAME_RE.match(name):
            raise InvalidRequestError(f"Invalid header name {name!r}")
        if not isinstance(value, str):
            raise InvalidRequestError(f"Header {name!r} must have a str value, got {type(value).__name__}")
        if _CONTROL_CHARS_RE.search(value):
            raise InvalidRequestError(f"Header {name!r} contains control characters")
        _require_utf8(value, f"Header {name!r}")
        lname = name.lower()
        if lname in seen:
            raise InvalidRequestError(f"Header {name!r} is given more than once")
        seen.add(lname)
        if lname in UNSIGNED_HEADERS:
            continue
        result[lname] = ' '.join(value.split())
    return result


def canonical_headers(signable: Mapping[str, str]) -> str:
    return ''.join(f'{name}:{signable[name]}\n' for name in sorted(signable))


def signed_headers_list(signable: Mapping[str, str]) -> str:
    return ';'.join(sorted(signable))


def payload_hash(body: Body) -> str:
    """Hex SHA-256 of the body; seekable bodies are read in chunks and rewound."""
    if body is None:
        return EMPTY_SHA256_HASH
    if isinstance(body, (bytes, bytearray)):
        return hashlib.sha256(body).hexdigest()
    if isinstance(body, str):
        return hashlib.sha256(body.encode('utf-8')).hexdigest()

    position = body.tell()
    checksum = hashlib.sha256()
    try:
        while True:
            chunk = body.read(PAYLOAD_BUFFER)
            if not chunk:
                break
            if not isinstance(chunk, bytes):
                raise InvalidRequestError('body file must be opened in binary mode')
            checksum.update(chunk)
    finally:
        body.seek(position)
    return checksum.hexdigest()


def build_canonical_request(method: str, uri: str, query: str, signable: Mapping[str, str],
                            body_hash: str) -> str:
    return '\n'.join([
        method.upper(),
        uri,
        query,
        canonical_headers(signable),
        signed_headers_list(signable),
        body_hash,
    ])


def build_string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
    return '\n'.join([
        ALGORITHM,
        timestamp,
        scope,
        hashlib.sha256(canonical_request.encode('utf-8')).hexdigest(),
    ])


# Key derivation and signature


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode('utf-8'), hashlib.sha256).digest()


@lru_cache(maxsize=64)
def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """
    Derive the scoped signing key for ``date/region/service``.

    Results are memoised per process, so the secret keys of the last 64 scopes
    stay referenced by the cache. Call ``derive_signing_key.cache_clear()`` after
    rotating or revoking credentials.
    """
    k_date = _hmac(('AWS4' + secret_key).encode('utf-8'), date)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    return hmac.new(signing_key, string_to_sign.encode('utf-8'), hashlib.sha256).hexdigest()


class SigV4Signer:
    """
    Request signer for AWS Signature Version 4.

    The signer holds credentials and a clock and nothing else; every call takes
    an immutable :class:`RequestDescriptor` and returns a new
    :class:`SignedRequest`, so one signer can be shared between threads.

    The service comes from the request, then from the credentials, then from
    the request host (see :func:`reqsign.endpoints.parse_host`). The region
    comes from the request, then from a recognised AWS host, then from the
    credentials, so an ambient ``AWS_DEFAULT_REGION`` never overrides the
    region an endpoint names.
    """

    def __init__(self, credentials: Credentials, clock: Optional[Clock] = None):
        self.credentials = credentials
        self._clock = clock or utcnow

    def _scope(self, request: RequestDescriptor) -> Tuple[str, str]:
        service = _service_name(request.service)
        region = request.region
        if service and region:
            return service, region

        try:
            derived_service, derived_region = parse_host(request.host)
        except InvalidRequestError:
            service = service or _service_name(self.credentials.service)
            region = region or self.credentials.region
            if not service or not region:
                raise
            return service, region

        service = service or _service_name(self.credentials.service) or derived_service
        region = region or derived_region
        return service, region

    def _base_headers(self, request: RequestDescriptor) -> Dict[str, str]:
        headers = {k: v for k, v in request.headers.items() if k.lower() not in _STALE_HEADERS}
        if not any(k.lower() == 'host' for k in headers):
            headers['Host'] = request.host
        return headers

    def _prepare(self, request: RequestDescriptor) -> Tuple[str, str, str]:
        if not request.host:
            raise InvalidRequestError('Request host must not be empty')
        _require_utf8(request.method, 'Request method')
        service, region = self._scope(request)
        timestamp = format_timestamp(self._clock())
        scope = f'{timestamp[:8]}/{region}/{service}/{TERMINATOR}'
        return service, timestamp, scope

    def _sign_canonical(self, method: str, uri: str, query: QueryPairs, signable: Mapping[str, str],
                        body_hash: str, timestamp: str, scope: str) -> Tuple[str, str, str]:
        canonical_request = build_canonical_request(
            method, uri, canonical_query_string(query), signable, body_hash
        )
        logger.debug('CanonicalRequest:\n%s', canonical_request)
        string_to_sign = build_string_to_sign(timestamp, scope, canonical_request)
        logger.debug('StringToSign:\n%s', string_to_sign)

        date, region, service, _ = scope.split('/')
        signing_key = derive_signing_key(self.credentials.secret_access_key, date, region, service)
        return canonical_request, string_to_sign, compute_signature(signing_key, string_to_sign)

    def sign(self, request: RequestDescriptor) -> SignedRequest:
        """Sign with an ``Authorization`` header."""
        service, timestamp, scope = self._prepare(request)
        headers = self._base_headers(request)

        # A caller-supplied Date header is honoured instead of X-Amz-Date.
        date_header = next((k for k in headers if k.lower() == 'date'), None)
        if date_header is not None:
            moment = datetime.strptime(timestamp, SIGV4_TIMESTAMP)
            headers[date_header] = formatdate(calendar.timegm(moment.timetuple()), usegmt=True)
        else:
            headers['X-Amz-Date'] = timestamp

        if self.credentials.session_token:
            headers['X-Amz-Security-Token'] = self.credentials.session_token

        body_hash = request.get_header(CONTENT_SHA256_HEADER)
        if body_hash is None:
            body_hash = payload_hash(request.body)
            if service == Service.S3.value:
                headers[CONTENT_SHA256_HEADER] = body_hash

        signable = headers_to_sign(headers)
        signed = signed_headers_list(signable)
        canonical_request, string_to_sign, signature = self._sign_canonical(
            request.method, canonical_uri(request.path, service), request.query,
            signable, body_hash, timestamp, scope,
        )

        headers['Authorization'] = (
            f'{ALGORITHM} Credential={self.credentials.access_key_id}/{scope}, '
            f'SignedHeaders={signed}, Signature={signature}'
        )
        return self._result(request, headers, request.query, timestamp, scope, signed, signature,
                            canonical_request, string_to_sign)

    def presign(self, request: RequestDescriptor, expires: int = DEFAULT_EXPIRES) -> SignedRequest:
        """Sign with query parameters, producing a presigned URL.

        ``expires`` is the validity window in seconds, at most seven days.
        """
        if isinstance(expires, bool) or not isinstance(expires, int) or not 1 <= expires <= MAX_EXPIRES:
            raise InvalidRequestError(f"expires must be an integer between 1 and {MAX_EXPIRES}, got {expires!r}")

        service, timestamp, scope = self._prepare(request)
        headers = self._base_headers(request)
        signable = headers_to_sign(headers)
        signed = signed_headers_list(signable)

        auth_params = [
            ('X-Amz-Algorithm', ALGORITHM),
            ('X-Amz-Credential', f'{self.credentials.access_key_id}/{scope}'),
            ('X-Amz-Date', timestamp),
            ('X-Amz-Expires', str(expires)),
            ('X-Amz-SignedHeaders', signed),
        ]
        if self.credentials.session_token:
            auth_params.append(('X-Amz-Security-Token', self.credentials.session_token))
        query = tuple(p for p in request.query if p[0] not in _STALE_QUERY) + tuple(auth_params)

        if service == Service.S3.value:
            body_hash = UNSIGNED_PAYLOAD
        else:
            body_hash = request.get_header(CONTENT_SHA256_HEADER) or payload_hash(request.body)

        canonical_request, string_to_sign, signature = self._sign_canonical(
            request.method, canonical_uri(request.path, service), query,
            signable, body_hash, timestamp, scope,
        )
        query += (('X-Amz-Signature', signature),)
        return self._result(request, headers, query, timestamp, scope, signed, signature,
                            canonical_request, string_to_sign)

    def create_headers(self, method: str, url: str, headers: Optional[Headers] = None,
                       body: Body = None) -> Dict[str, str]:
        """Sign a request given as a URL and return its final headers."""
        request = RequestDescriptor.from_url(url, method=method, headers=headers, body=body)
        return dict(self.sign(request).headers)

    @staticmethod
    def _result(request: RequestDescriptor, headers: Dict[str, str], query: QueryPairs, timestamp: str,
                scope: str, signed: str, signature: str, canonical_request: str,
                string_to_sign: str) -> SignedRequest:
        return SignedRequest(
            host=request.host,
            method=request.method,
            path=request.path,
            query=query,
            headers=headers,
            body=request.body,
            service=request.service,
            region=request.region,
            scheme=request.scheme,
            timestamp=timestamp,
            credential_scope=scope,
            signed_headers=signed,
            signature=signature,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
        )


def sign(request: RequestDescriptor, credentials: Credentials, clock: Optional[Clock] = None) -> SignedRequest:
    return SigV4Signer(credentials, clock).sign(request)


def presign(request: RequestDescriptor, credentials: Credentials, expires: int = DEFAULT_EXPIRES,
            clock: Optional[Clock] = None) -> SignedRequest:
    return SigV4Signer(credentials, clock).presign(request, expires)
