"""Solar Analytics Bridge API.

Exposes today's Solar Analytics site totals and the latest live reading on
/site and /live for home dashboards and automations.
"""

import argparse
import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request

from .client import SolarAnalyticsClient, SolarAnalyticsError
from .config import REFRESH_MODES, Settings, settings
from .models import DailySummary, HealthStatus, LiveSummary
from .service import SolarBridge, create_source
from .snapshot import SnapshotStore

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("solar-bridge")


def create_app(
    app_settings: Optional[Settings] = None,
    client: Optional[SolarAnalyticsClient] = None,
) -> FastAPI:
    """Build the FastAPI application.

    The upstream client, snapshot store and refresh source are created in
    the startup hook so that missing credentials abort before serving.
    """
    cfg = app_settings or settings

    app = FastAPI(
        title=cfg.api_title,
        version=cfg.api_version,
        description="Local REST bridge for Solar Analytics site data",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # =========================================================================
    # Startup/Shutdown
    # =========================================================================

    @app.on_event("startup")
    async def startup():
        """Validate configuration and start the refresh source."""
        logger.info(f"Starting {cfg.api_title} v{cfg.api_version}")

        missing = cfg.missing_credentials()
        if missing:
            raise RuntimeError(f"Missing required settings: {', '.join(missing)}")
        cfg.validate_refresh_mode()

        upstream = client or SolarAnalyticsClient(
            cfg.credentials,
            base_url=cfg.sa_base_url,
            timeout=cfg.request_timeout,
        )
        store = SnapshotStore()
        bridge = SolarBridge(upstream, cfg.local_zone())
        source = create_source(cfg, bridge, store)

        app.state.client = upstream
        app.state.store = store
        app.state.source = source

        logger.info(f"Solar Analytics site {cfg.sa_site_id} via {upstream.base_url}")
        await source.start()

    @app.on_event("shutdown")
    async def shutdown():
        """Stop background refresh and release the HTTP session."""
        logger.info("Shutting down API")
        source = getattr(app.state, "source", None)
        if source is not None:
            await source.stop()
        upstream = getattr(app.state, "client", None)
        if upstream is not None:
            await upstream.close()

    # =========================================================================
    # Health & Info Endpoints
    # =========================================================================

    @app.get("/", tags=["Info"])
    async def root():
        """API root - returns basic info."""
        return {
            "name": cfg.api_title,
            "version": cfg.api_version,
            "mode": cfg.refresh_mode,
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthStatus, tags=["Info"])
    async def health(request: Request):
        """Report token state and the last refresh of each snapshot."""
        tokens = request.app.state.client.tokens
        status = await request.app.state.store.status()
        token = tokens.token
        return HealthStatus(
            refresh_mode=request.app.state.source.mode,
            token_valid=tokens.is_valid,
            token_expires_at=token.expires_at if token else None,
            live_available=status.live_available,
            site_available=status.site_available,
            last_live_refresh=status.last_live_refresh,
            last_site_refresh=status.last_site_refresh,
            version=cfg.api_version,
        )

    # =========================================================================
    # Energy Endpoints
    # =========================================================================

    @app.get("/live", response_model=LiveSummary, tags=["Energy"])
    async def get_live(request: Request):
        """Most recent generation and consumption reading."""
        try:
            return await request.app.state.source.live()
        except SolarAnalyticsError as e:
            logger.error(f"Failed to update live data: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to update live data: {e}")

    @app.get("/site", response_model=DailySummary, tags=["Energy"])
    async def get_site(request: Request):
        """Today's generation, consumption, grid import/export and sub-loads."""
        try:
            return await request.app.state.source.site()
        except SolarAnalyticsError as e:
            logger.error(f"Failed to update site data: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to update site data: {e}")

    return app


app = create_app()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solar-bridge",
        description="Serve Solar Analytics site data on a local HTTP API",
    )
    parser.add_argument("--host", help=f"Listen address (default: {settings.host})")
    parser.add_argument("--port", type=int, help=f"Listen port (default: {settings.port})")
    parser.add_argument(
        "--mode",
        choices=REFRESH_MODES,
        help=f"Refresh mode (default: {settings.refresh_mode})",
    )
    return parser


def run(argv=None):
    """Console entry point."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.mode:
        overrides["refresh_mode"] = args.mode
    cfg = settings.model_copy(update=overrides)

    missing = cfg.missing_credentials()
    if missing:
        logger.error(f"Missing required settings: {', '.join(missing)}")
        sys.exit(1)

    uvicorn.run(create_app(cfg), host=cfg.host, port=cfg.port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    run()
