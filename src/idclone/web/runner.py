"""Uvicorn runner for the session server."""

import copy

import structlog
import uvicorn
from uvicorn.config import LOGGING_CONFIG

from idclone.app import App
from idclone.config import Config
from idclone.web.server import create_fastapi_app

logger = structlog.get_logger(__name__)


def build_log_config() -> dict:
    """Uvicorn's logging config with timestamps and without the color prefixes."""
    log_config = copy.deepcopy(LOGGING_CONFIG)
    log_config["formatters"]["access"]["fmt"] = '%(asctime)s - %(client_addr)s - "%(request_line)s" %(status_code)s'
    log_config["formatters"]["default"]["fmt"] = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    return log_config


def run_server(app: App, config: Config) -> None:
    fastapi_app = create_fastapi_app(app, config)
    logger.info("session_server_starting", host=config.host, port=config.port, ttl_hours=config.session_ttl_hours)
    uvicorn.run(fastapi_app, host=config.host, port=config.port, log_config=build_log_config(), access_log=True)
