"""
Mapping between AWS endpoint hostnames and (service, region) pairs.

Only well-known host shapes are recognised. A host that does not fit one of
them (custom domains, IP addresses, local emulators) must be signed with an
explicit service and region; guessing would silently produce a wrong
credential scope.
"""

import re
from typing import Tuple

from .exceptions import InvalidRequestError

GLOBAL_REGION = 'us-east-1'
GLOBAL_REGION_CN = 'cn-north-1'

# Services served from a single region-less endpoint.
GLOBAL_SERVICES = frozenset({
    'cloudfront',
    'iam',
    'importexport',
    'organizations',
    'route53',
    'sts',
})

_REGION_RE = re.compile(r'^[a-z]{2}(?:-[a-z]+)+-\d+$')
_FUNCTION_URL_RE = re.compile(r'^[a-z0-9]+\.lambda-url\.(?P<region>[a-z0-9-]+)\.on\.aws$')

_SUFFIX = '.amazonaws.com'
_SUFFIX_CN = '.amazonaws.com.cn'

# Endpoint labels that differ from the signing name.
_LABEL_TO_SERVICE = {'email': 'ses'}
_SERVICE_TO_LABEL = {v: k for k, v in _LABEL_TO_SERVICE.items()}


def is_region(value: str) -> bool:
    return bool(_REGION_RE.match(value))


def strip_port(host: str) -> str:
    if host.startswith('['):
        end = host.find(']')
        return host[:end + 1] if end != -1 else host
    return host.split(':', 1)[0]


def _ambiguous(host: str) -> InvalidRequestError:
    return InvalidRequestError(
        f"Cannot determine service and region from host {host!r}; pass them explicitly"
    )


def parse_host(host: str) -> Tuple[str, str]:
    """Derive ``(service, region)`` from an AWS endpoint hostname.

    Recognised shapes::

        service.region.amazonaws.com          lambda.us-west-2.amazonaws.com
        prefix.service.region.amazonaws.com   my-bucket.s3.eu-west-1.amazonaws.com
        service.amazonaws.com                 iam.amazonaws.com (global services)
        [bucket.]s3[-region].amazonaws.com    legacy S3 endpoints
        domain.region.es.amazonaws.com        OpenSearch domains
        id.lambda-url.region.on.aws           Lambda function URLs

    A ``.amazonaws.com.cn`` suffix is accepted wherever ``.amazonaws.com`` is.

    Raises InvalidRequestError for anything else.
    """
    if not host:
        raise InvalidRequestError('host must not be empty')

    name = strip_port(host.strip().lower()).rstrip('.')

    m = _FUNCTION_URL_RE.match(name)
    if m:
        return 'lambda', m.group('region')

    if name.endswith(_SUFFIX_CN):
        labels = name[:-len(_SUFFIX_CN)].split('.')
        global_region = GLOBAL_REGION_CN
    elif name.endswith(_SUFFIX):
        labels = name[:-len(_SUFFIX)].split('.')
        global_region = GLOBAL_REGION
    else:
        raise _ambiguous(host)

    if '' in labels:
        raise _ambiguous(host)

    last = labels[-1]

    # search-domain.us-east-1.es.amazonaws.com puts the region first
    if last in ('es', 'aoss') and len(labels) >= 2 and is_region(labels[-2]):
        return last, labels[-2]

    if is_region(last) and len(labels) >= 2:
        service = labels[-2]
        if service == 'dualstack' and len(labels) >= 3:
            service = labels[-3]
        return _LABEL_TO_SERVICE.get(service, service), last

    if last.startswith('s3-') and is_region(last[3:]):
        return 's3', last[3:]

    if last in ('s3', 's3-external-1'):
        return 's3', global_region

    if len(labels) == 1 and last in GLOBAL_SERVICES:
        return last, global_region

    raise _ambiguous(host)


def endpoint_host(service: str, region: str) -> str:
    """Build the default endpoint hostname for a service in a region."""
    if not service or not region:
        raise InvalidRequestError('service and region are required to build an endpoint host')

    label = _SERVICE_TO_LABEL.get(service, service)
    if service in GLOBAL_SERVICES and region == GLOBAL_REGION:
        return label + _SUFFIX
    suffix = _SUFFIX_CN if region.startswith('cn-') else _SUFFIX
    return f"{label}.{region}{suffix}"
