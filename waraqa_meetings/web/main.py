"""
Web API entrypoint - runs the FastAPI server.
"""

import os
import logging
import uvicorn

logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def main():
    from waraqa_meetings.web import init_web_app
    from waraqa_meetings.config import load_config

    config = load_config(os.environ.get("WARAQA_CONFIG"))
    app = init_web_app(config)

    logger.info(f"Starting Waraqa Meetings API on {config.web.host}:{config.web.port}")

    uvicorn.run(
        app,
        host=config.web.host,
        port=config.web.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
