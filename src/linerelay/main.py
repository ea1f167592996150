"""Process entry point: load config, build the app, serve it with uvicorn."""

import sys

import uvicorn

from linerelay.api.factory import create_app
from linerelay.config import ConfigError, RelayConfig
from linerelay.observability.logging import configure_logging, get_logger
from linerelay.observability.redaction import safe_log_context

logger = get_logger(__name__)


def main() -> None:
    try:
        config = RelayConfig.from_env()
    except ConfigError as e:
        logger.critical(str(e))
        sys.exit(1)

    configure_logging(config.log_level)
    app = create_app(config)

    logger.info(
        "LINE relay listening",
        extra={
            "extra_fields": safe_log_context(
                host=config.host,
                port=config.port,
                webhook_path=config.webhook_path,
                forwarding_to=config.completion_url,
            )
        },
    )
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
