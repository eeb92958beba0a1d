import logging
from collections.abc import Iterable

import httpx
from fastapi import Request, Response

from .errors import ProxyError
from .routing import Forward

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
}

# never copied from the client; httpx sets its own
REQUEST_EXCLUDED = HOP_BY_HOP_HEADERS | {'host', 'content-length'}

# httpx has already decoded the body, so length and encoding no longer apply
RESPONSE_EXCLUDED = HOP_BY_HOP_HEADERS | {'content-encoding', 'content-length'}


def filter_request_headers(request: Request) -> list[tuple[bytes, bytes]]:
    """
    Copy client headers minus hop-by-hop ones, plus X-Forwarded-* describing the client.
    """
    headers = [
        (k, v) for k, v in request.headers.raw
        if k.decode('latin-1').lower() not in REQUEST_EXCLUDED
        and not k.lower().startswith(b'x-forwarded-')
    ]

    client_ip = request.client.host if request.client else 'unknown'
    existing_xff = request.headers.get('x-forwarded-for', '')
    forwarded_for = f'{existing_xff}, {client_ip}' if existing_xff else client_ip

    headers.append((b'x-forwarded-for', forwarded_for.encode('latin-1')))
    if 'host' in request.headers:
        headers.append((b'x-forwarded-host', request.headers['host'].encode('latin-1')))
    headers.append((b'x-forwarded-proto', request.url.scheme.encode('latin-1')))
    return headers


def filter_response_headers(items: Iterable[tuple[str, str]],
                            excluded: set[str] = RESPONSE_EXCLUDED) -> list[tuple[str, str]]:
    return [(k, v) for k, v in items if k.lower() not in excluded]


async def forward(client: httpx.AsyncClient, request: Request, outcome: Forward) -> Response:
    """
    Send the inbound request to outcome.target_url and relay the upstream answer.
    :raises ProxyError: when the upstream cannot be reached
    """
    logger.info('proxy: %s -> %s', request.url.path, outcome.target_url)

    body = await request.body()
    try:
        resp = await client.request(
            request.method,
            outcome.target_url,
            headers=filter_request_headers(request),
            content=body,
        )
    except httpx.RequestError as exc:
        logger.warning('proxy: %s failed: %r', outcome.target_url, exc)
        raise ProxyError(outcome.target_url, str(exc) or type(exc).__name__) from exc

    response = Response(content=resp.content, status_code=resp.status_code)
    excluded = RESPONSE_EXCLUDED
    if request.method == 'HEAD':
        # no body to measure; relay the upstream length instead
        del response.headers['content-length']
        excluded = RESPONSE_EXCLUDED - {'content-length'}
    for k, v in filter_response_headers(resp.headers.multi_items(), excluded):
        response.headers.append(k, v)
    return response
