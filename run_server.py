#!/usr/bin/env python3
"""Command line entry point: load config, set up logging, serve via gevent."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from gevent import pywsgi
from jinja2 import TemplateError

from app import check_templates, create_app
from services.auth import PamAuthenticator, ThreadpoolAuthenticator
from services.config import DEFAULT_CONFIG_PATH, Config, LoggingConfig, load_config
from services.errors import ConfigError
from services.logging_setup import core_log, core_logger, setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Web file manager over a single root directory.")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the configuration file")
    return parser.parse_args(argv)


def build_server(config: Config, application) -> pywsgi.WSGIServer:
    ws = config.web_server
    ssl_args = {}
    if ws.protocol == "https":
        ssl_args = {"certfile": ws.ssl_cert_file, "keyfile": ws.ssl_key_file}
    return pywsgi.WSGIServer(
        (ws.host, ws.port),
        application,
        log=None,
        error_log=core_logger(),
        **ssl_args,
    )


def _fatal(msg: str, **extra) -> int:
    core_log("critical", msg, **extra)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    # stderr until the configured sink is known
    setup_logging(LoggingConfig())
    try:
        config = load_config(args.config)
    except ConfigError as e:
        return _fatal("error setting up configuration", error=e)
    try:
        setup_logging(config.logging)
    except ConfigError as e:
        return _fatal("error setting up logging", error=e)

    core_log("info", "base directory", path=config.web_server.base_dir)

    authenticator = ThreadpoolAuthenticator(PamAuthenticator(config.web_server.pam_service))
    app = create_app(config, authenticator=authenticator)
    try:
        check_templates(app)
    except TemplateError as e:
        return _fatal("error loading templates", error=e)

    ws = config.web_server
    try:
        server = build_server(config, app)
        core_log("info", f"server started at {ws.protocol}://{ws.host}:{ws.port}")
        server.serve_forever()
    except KeyboardInterrupt:
        core_log("info", "server stopped")
        return 0
    except OSError as e:
        return _fatal("server error", error=e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
