import argparse
import logging
import sys

import uvicorn

from .config import ServerSettings
from .errors import ConfigError
from .main import application
from .routing import load_rules

logger = logging.getLogger(__name__)

CONFIG_HELP = """\
Where to read routing rules from:
  a JSON file mapping URL prefixes to either
    {"path": dir, "index": "index.html", "dir": true}  serve a directory
        (path defaults to the prefix itself, dir toggles listings)
    {"proxy_to": url}  forward, e.g. "/api/get": {"proxy_to": "https://httpbin.org/get"}
        sends /api/get?ans=42 to https://httpbin.org/get?ans=42
  a directory: serve it at /
  omitted: ./static_host.json if it exists, otherwise serve ./ at /"""


def parse_args(argv: list[str] | None, settings: ServerSettings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='static-host',
        description='Serve local directories and proxy URL prefixes to remote origins.',
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument('config', nargs='?', default=None, help=CONFIG_HELP)
    parser.add_argument('--host', default=settings.host)
    parser.add_argument('--port', type=int, default=settings.port)
    parser.add_argument('--log-level', default=settings.log_level,
                        type=str.upper,
                        choices=['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'])
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    try:
        settings = ServerSettings.from_env()
    except ConfigError as exc:
        sys.exit(f'error: {exc}')

    args = parse_args(argv, settings)
    logging.basicConfig(
        level=args.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    logger.info('args: %s', vars(args))

    try:
        rules = load_rules(args.config)
    except ConfigError as exc:
        logger.error('error: %s', exc)
        sys.exit(1)

    for rule in rules:
        logger.info('rule: %s -> %r', rule.prefix, rule.target)

    application.state.rules = rules
    uvicorn.run(application, host=args.host, port=args.port, log_level=args.log_level.lower())
