#!/usr/bin/env python3
"""
Sign a request to an AWS endpoint with credentials from the environment and
print the response body.

    AWS_ACCESS_KEY_ID=... AWS_SECRET_ACCESS_KEY=... \\
        invoke_function.py abc123.lambda-url.us-west-2.on.aws '{"AccountId": "1"}'
"""
import argparse
import logging
import sys

import requests

from reqsign import RequestDescriptor, SigningError, resolve_credentials, sign

logger = logging.getLogger('invoke_function')

DEFAULT_SERVICE = 'lambda'
DEFAULT_REGION = 'us-west-2'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('host', help='endpoint hostname, f.e. a function URL host')
    parser.add_argument('body', nargs='?', help='request body; the request is a POST when given')
    parser.add_argument('--service', default=DEFAULT_SERVICE)
    parser.add_argument('--region', default=DEFAULT_REGION)
    parser.add_argument('--path', default='/')
    parser.add_argument('--dry-run', action='store_true', help='print the signed headers instead of sending')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def build_request(args) -> RequestDescriptor:
    return RequestDescriptor(
        host=args.host,
        method='POST' if args.body is not None else 'GET',
        path=args.path,
        headers={'Content-Type': 'application/json'},
        body=args.body,
        service=args.service,
        region=args.region,
    )


def main(argv=None, environ=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    try:
        credentials = resolve_credentials(environ=environ)
        signed = sign(build_request(args), credentials)
    except SigningError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        for name, value in signed.headers.items():
            print(f"{name}: {value}")
        return 0

    logger.info('%s %s', signed.method, signed.url)
    response = requests.request(signed.method, signed.url, headers=dict(signed.headers), data=signed.body)
    sys.stdout.write(response.text)
    return 0 if response.ok else 1


if __name__ == '__main__':
    sys.exit(main())
