# Centralized pytest configuration file (fixtures, hooks, plugins, etc.)
import pytest
from asgi_lifespan import LifespanManager
from fastapi import FastAPI, Request, Response
from httpx import AsyncClient, ASGITransport

from static_host.main import application as gateway_app
from static_host.routing import RuleSet


#----Static content for tests----
@pytest.fixture
def site_dir(tmp_path):
    """Directory with an index page, a nested folder and a dotfile."""
    site = tmp_path / 'site'
    (site / 'sub').mkdir(parents=True)
    (site / 'index.html').write_text('<h1>home</h1>')
    (site / 'about.txt').write_text('about us')
    (site / 'sub' / 'page.txt').write_text('nested page')
    (site / '.secret').write_text('hidden')
    return site


@pytest.fixture
def docs_dir(tmp_path):
    """Directory with a custom index name and a folder without any index."""
    docs = tmp_path / 'docs'
    (docs / 'notes').mkdir(parents=True)
    (docs / 'README.txt').write_text('read me first')
    (docs / 'notes' / 'a.txt').write_text('note a')
    (docs / '.env').write_text('TOKEN=abc')
    return docs


#----Routes overrides for tests----
@pytest.fixture
def rules(site_dir, docs_dir) -> RuleSet:
    return RuleSet.build({
        '/api': {'proxy_to': 'http://upstream/v1'},
        '/site': {'path': str(site_dir)},
        '/docs': {'path': str(docs_dir), 'index': 'README.txt', 'dir': False},
    })


@pytest.fixture
def upstream_app() -> FastAPI:
    app = FastAPI()     # mock upstream app for tests

    @app.get('/v1/cookies')
    async def cookies():    # tests that repeated response headers survive
        response = Response(content=b'ok', media_type='text/plain')
        response.headers.append('set-cookie', 'a=1; Path=/')
        response.headers.append('set-cookie', 'b=2; Path=/')
        response.headers['x-upstream'] = 'yes'
        return response

    @app.head('/v1/sized')
    async def sized():      # tests that HEAD keeps the upstream content-length
        return Response(status_code=200, headers={'content-length': '1234'})

    @app.get('/v1/missing')
    async def missing():    # tests that upstream status codes are relayed
        return Response(content=b'gone', status_code=404)

    @app.api_route(
        '/{path:path}',
        methods=['GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS', 'HEAD'],
    )
    async def echo(path: str, request: Request):  # tests path, method, query and body forwarding
        body = await request.body()
        return {
            'message': 'hello from upstream',
            'method': request.method,
            'path': request.url.path,
            'raw_path': request.scope['raw_path'].decode(),
            'query': request.url.query,
            'body': body.decode(),
            'received_headers': dict(request.headers),
        }

    return app


@pytest.fixture
async def gateway_client(upstream_app: FastAPI, rules: RuleSet):
    """Gateway test client with upstream mocked via ASGITransport"""
    # Transport to fake upstream
    upstream_transport = ASGITransport(app=upstream_app)
    upstream_client = AsyncClient(
        transport=upstream_transport,
        base_url='http://upstream'
    )
    # Set state before startup so the lifespan keeps it instead of loading from disk
    gateway_app.state.rules = rules
    gateway_app.state.http_client = upstream_client

    async with LifespanManager(gateway_app):
        # client with transport to gateway app
        gateway_transport = ASGITransport(app=gateway_app)
        async with AsyncClient(
                transport=gateway_transport,
                base_url='http://gateway') as client:
            yield client

    await upstream_client.aclose()
    del gateway_app.state.rules
    del gateway_app.state.http_client
