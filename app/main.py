import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import health, tiktok, youtube
from app.config.settings import Config, load_config
from app.core.logging import RequestIdMiddleware, setup_logging
from app.i18n import i18n

logger = logging.getLogger("app")


def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or load_config()
    setup_logging(config.logging)
    i18n.default_locale = config.i18n.default_locale
    os.makedirs(config.download.temp_dir, exist_ok=True)

    app = FastAPI(
        title=config.api.title,
        version=config.api.version,
        docs_url="/docs" if config.api.debug else None,
        redoc_url=None
    )
    app.state.config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    # Routes
    app.include_router(health.router, tags=["Health"])
    app.include_router(youtube.router, tags=["YouTube"])
    app.include_router(tiktok.router, tags=["TikTok"])

    logger.info(
        f"{config.api.title} {config.api.version} ready "
        f"(yt-dlp binary {'enabled' if config.download.use_external_binary else 'disabled'})"
    )
    return app


app = create_app()
