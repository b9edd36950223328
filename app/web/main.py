from __future__ import annotations

import uvicorn

from app.config import build_config, get_settings
from app.utils.logging import configure_logging, get_logger
from app.web.app import create_app


logger = get_logger("main")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    config = build_config(settings)
    if not config.cashfree.enabled:
        logger.warning("cashfree_not_configured", mode="mock")
    if not config.oxapay.enabled:
        logger.warning("oxapay_not_configured", mode="mock")
    if not config.image_provider.enabled:
        logger.warning("a4f_not_configured")

    app = create_app(config)
    uvicorn.run(
        app,
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
