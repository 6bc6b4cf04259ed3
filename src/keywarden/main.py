"""Application entry point for the Keywarden server."""

import structlog

from keywarden.app import App
from keywarden.config import Config
from keywarden.core.modules.session.manager import is_bcrypt_hash
from keywarden.logging import setup_logging
from keywarden.web.runner import run_server

logger = structlog.get_logger(__name__)


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    if not is_bcrypt_hash(config.auth_password):
        logger.warning("auth_password_not_hashed", hint="store a bcrypt hash in KEYWARDEN_AUTH_PASSWORD")
    logger.info(
        "keywarden_starting",
        host=config.host,
        port=config.port,
        timezone=config.timezone,
        session_ttl_hours=config.session_ttl_hours,
    )
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
