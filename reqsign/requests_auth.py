from typing import Dict, Optional

import requests

from .credentials import Credentials
from .request import RequestDescriptor
from .sigv4 import Clock, SigV4Signer


class SigV4Auth(requests.auth.AuthBase):
    # Added or rewritten by requests/urllib3 after signing.
    _TRANSPORT_HEADERS = frozenset({'accept', 'accept-encoding', 'connection', 'content-length'})

    def __init__(self, credentials: Credentials, service: Optional[str] = None,
                 region: Optional[str] = None, clock: Optional[Clock] = None) -> None:
        """
        Authentication helper for requests. Pass it as the ``auth`` argument
        of a request, or assign it to a session's ``auth`` attribute.

        :param credentials: The credentials to sign with.
        :param service: Signing name of the service, f.e. ``'lambda'``. Derived
            from the request host when omitted.
        :param region: The AWS region. Derived from the request host when omitted.
        :param clock: Returns the signing time; defaults to the current UTC time.
        """
        self.service = service
        self.region = region
        self.signer = SigV4Signer(credentials, clock)

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        headers: Dict[str, str] = {}
        for name, value in r.headers.items():
            if name.lower() in self._TRANSPORT_HEADERS:
                continue
            if isinstance(value, bytes):
                value = value.decode('latin-1')
            headers[name] = value

        request = RequestDescriptor.from_url(
            r.url, method=r.method, headers=headers, body=r.body,
            service=self.service, region=self.region,
        )
        signed = self.signer.sign(request)
        r.headers.update(signed.headers)
        return r
