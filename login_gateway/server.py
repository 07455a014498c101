"""
Web server startup.

Shibboleth mode runs two listeners in one event loop:

- HTTPS on HTTPSPORT, using the SP certificate and key
- HTTP on HTTPPORT, answering every request with a 301 to the HTTPS origin

Shibalike mode runs plain HTTP on HTTPPORT only.
"""

import asyncio
import logging
from typing import List

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse

from login_gateway.config import Settings

logger = logging.getLogger(__name__)

HOST = "0.0.0.0"
REDIRECT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def https_target(domain: str, https_port: int, path: str, query: str = "") -> str:
    """
    Build ``https://domain[:port]/path?query``.

    The port is omitted when it is the HTTPS default (443).
    """
    target = f"https://{domain}"
    if https_port != 443:
        target += f":{https_port}"
    target += path
    if query:
        target += "?" + query
    return target


def build_https_redirect_app(domain: str, https_port: int) -> FastAPI:
    """
    ASGI app that sends every request to the same path over HTTPS.
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=REDIRECT_METHODS, include_in_schema=False)
    async def redirect_to_https(request: Request) -> RedirectResponse:
        url = https_target(domain, https_port, request.url.path, request.url.query)
        return RedirectResponse(url=url, status_code=301)

    return app


def build_server_configs(app: FastAPI, settings: Settings) -> List[uvicorn.Config]:
    """
    Listener configuration for the active mode.

    ``log_config=None`` keeps uvicorn from replacing our logging setup; the
    gateway writes its own access log.
    """
    common = {
        "host": HOST,
        "log_config": None,
        "access_log": False,
        "log_level": settings.LOG_LEVEL.lower(),
    }

    if settings.SHIBALIKE:
        return [uvicorn.Config(app, port=settings.HTTPPORT, **common)]

    return [
        uvicorn.Config(
            app,
            port=settings.HTTPSPORT,
            ssl_certfile=str(settings.SP_CERT_PATH),
            ssl_keyfile=str(settings.SP_KEY_PATH),
            **common,
        ),
        uvicorn.Config(
            build_https_redirect_app(settings.DOMAIN, settings.HTTPSPORT),
            port=settings.HTTPPORT,
            **common,
        ),
    ]


async def serve_all(configs: List[uvicorn.Config]) -> None:
    servers = [uvicorn.Server(config) for config in configs]
    await asyncio.gather(*(server.serve() for server in servers))


def serve(app: FastAPI, settings: Settings) -> None:
    """Run the gateway until interrupted."""
    configs = build_server_configs(app, settings)
    for config in configs:
        logger.info(
            "Listening",
            extra={"port": config.port, "https": config.ssl_certfile is not None}
        )
    asyncio.run(serve_all(configs))
