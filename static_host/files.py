import html
import logging
from pathlib import Path
from urllib.parse import quote, unquote

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response

from .routing import FileServe

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ('GET', 'HEAD')


def _listing(directory: Path, root: Path, url_path: str) -> str:
    entries = []
    if directory != root:
        entries.append('<li><a href="../">../</a></li>')

    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        name = entry.name + ('/' if entry.is_dir() else '')
        entries.append(f'<li><a href="{quote(name)}">{html.escape(name)}</a></li>')

    title = html.escape(url_path)
    items = '\n'.join(entries)
    return (
        '<!DOCTYPE html>\n'
        f'<html><head><meta charset="utf-8"><title>Index of {title}</title></head>\n'
        f'<body><h1>Index of {title}</h1>\n'
        f'<ul>\n{items}\n</ul>\n'
        '</body></html>\n'
    )


def _resolve(outcome: FileServe, request_path: str, query: str) -> Response:
    # request_path is still percent-encoded
    remainder = unquote(request_path[len(outcome.prefix):])
    segments = [s for s in remainder.split('/') if s]

    if not outcome.allow_listing and any(s.startswith('.') for s in segments):
        raise HTTPException(status_code=404, detail='File not found')

    root = Path(outcome.local_path).resolve()
    full_path = root.joinpath(*segments).resolve()
    try:
        full_path.relative_to(root)
    except ValueError:
        logger.warning('Path traversal attempt: %s', request_path)
        raise HTTPException(status_code=403, detail='Access denied')

    if full_path.is_dir():
        if not request_path.endswith('/'):
            location = request_path + '/'
            if query:
                location = f'{location}?{query}'
            return RedirectResponse(location, status_code=302)

        index_path = full_path / outcome.index_file
        if index_path.is_file():
            return FileResponse(index_path)
        if outcome.allow_listing:
            return HTMLResponse(_listing(full_path, root, unquote(request_path)))
        raise HTTPException(status_code=404, detail='File not found')

    if full_path.is_file():
        return FileResponse(full_path)
    raise HTTPException(status_code=404, detail='File not found')


async def serve_files(outcome: FileServe,
                      request_path: str,
                      query: str = '',
                      method: str = 'GET') -> Response:
    """
    Serve the part of request_path after the matched prefix from outcome.local_path.

    Directories are redirected to their slash form, then answered with the
    index file, a listing (when allowed) or 404.
    """
    if method not in ALLOWED_METHODS:
        raise HTTPException(
            status_code=405,
            detail='Method not allowed',
            headers={'Allow': ', '.join(ALLOWED_METHODS)},
        )
    return await run_in_threadpool(_resolve, outcome, request_path, query)
