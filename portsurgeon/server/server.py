"""
PortSurgeon Local API v1.0.0
Port inspection, safety-gated process termination and container control over HTTP.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Body, FastAPI, Path, Query, Request
from fastapi.responses import JSONResponse, Response

from portsurgeon import __version__
from portsurgeon.core.config import Config
from portsurgeon.core.engine import SurgeonEngine
from portsurgeon.core.schemas import (
    ContainerActionRequest, ContainerInfo, ErrorResponse, GracefulKillRequest,
    HistoryEntry, KillRequest, ProcessNode, ProcessSnapshot, TerminationOutcome
)
from portsurgeon.core.security import verify_token
from portsurgeon.modules.port_scanner import ScanError
from portsurgeon.utils.cert_manager import CertManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger("PortSurgeonAPI")

TOKEN_HEADER = "X-Surgeon-Token"
EXPORT_MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}


def _engine(request: Request) -> SurgeonEngine:
    return request.app.state.engine


def create_app(engine: Optional[SurgeonEngine] = None, config: Optional[Config] = None) -> FastAPI:
    """
    Builds the API. An injected engine is used as-is; otherwise one is created
    from the configuration on startup and closed on shutdown.
    """
    config = config or (engine.config if engine is not None else Config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "engine", None) is None:
            owned = await SurgeonEngine.create(config)
            app.state.engine = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.engine = None

    app = FastAPI(
        title="PortSurgeon",
        version=__version__,
        description="Local port inspection and process termination API",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.token_hash = config.api_token_hash

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Enforce security headers and token authentication."""
        token_hash = request.app.state.token_hash
        if token_hash and request.url.path.startswith("/api/"):
            token = request.headers.get(TOKEN_HEADER, "")
            if not await asyncio.to_thread(verify_token, token_hash, token):
                client_ip = request.client.host if request.client else "unknown"
                logger.warning(f"Rejected unauthenticated request from {client_ip} to {request.url.path}")
                response = JSONResponse(status_code=401, content={"detail": "Unauthorized"})
            else:
                response = await call_next(request)
        else:
            response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.exception_handler(ScanError)
    async def scan_error_handler(request: Request, exc: ScanError):
        logger.error(f"Socket table scan failed: {exc}")
        body = ErrorResponse(code="SCAN_ERROR", message="Failed to scan ports", details=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump())

    # --- Queries ---

    @app.get("/api/v1/processes", response_model=ProcessSnapshot)
    async def get_processes(request: Request, include_non_listening: bool = False):
        """Current snapshot of port-holding processes."""
        return await _engine(request).get_processes(include_non_listening)

    @app.get("/api/v1/ports/{port}", response_model=List[ProcessNode])
    async def find_port(request: Request, port: int = Path(ge=0, le=65535)):
        """Processes holding a specific local port."""
        return await _engine(request).find_port(port)

    # --- Termination ---

    @app.post("/api/v1/processes/{pid}/terminate", response_model=TerminationOutcome)
    async def terminate(request: Request, pid: int = Path(ge=0), data: Optional[KillRequest] = Body(default=None)):
        data = data or KillRequest()
        return await _engine(request).kill_process(pid, data.force)

    @app.post("/api/v1/processes/{pid}/terminate/elevated", response_model=TerminationOutcome)
    async def terminate_elevated(request: Request, pid: int = Path(ge=0),
                                 data: Optional[KillRequest] = Body(default=None)):
        data = data or KillRequest()
        return await _engine(request).kill_process_elevated(pid, data.force)

    @app.post("/api/v1/processes/{pid}/terminate/graceful", response_model=TerminationOutcome)
    async def terminate_graceful(request: Request, pid: int = Path(ge=0),
                                 data: Optional[GracefulKillRequest] = Body(default=None)):
        data = data or GracefulKillRequest()
        return await _engine(request).kill_process_graceful(pid, data.timeout)

    # --- Containers ---

    @app.get("/api/v1/containers", response_model=List[ContainerInfo])
    async def list_containers(request: Request):
        return await _engine(request).get_containers()

    @app.get("/api/v1/containers/available")
    async def containers_available(request: Request):
        return {"available": _engine(request).is_container_available()}

    @app.post("/api/v1/containers/{container_id}/action", response_model=TerminationOutcome)
    async def container_action(request: Request, container_id: str, data: ContainerActionRequest):
        return await _engine(request).container_action(container_id, data.action)

    # --- History & export ---

    @app.get("/api/v1/history", response_model=List[HistoryEntry])
    def get_history(request: Request, limit: Optional[int] = Query(default=None, ge=1, le=1000)):
        return _engine(request).history(limit)

    @app.delete("/api/v1/history")
    def clear_history(request: Request):
        _engine(request).clear_history()
        logger.info("Action history cleared")
        return {"status": "cleared"}

    @app.get("/api/v1/export")
    async def export(request: Request, fmt: str = Query(default="json", alias="format", pattern="^(json|csv)$"),
                     include_non_listening: bool = False):
        """Snapshot download as JSON or CSV."""
        content = await _engine(request).export(fmt, include_non_listening)
        return Response(
            content=content,
            media_type=EXPORT_MEDIA_TYPES[fmt],
            headers={"Content-Disposition": f"attachment; filename=portsurgeon_export.{fmt}"},
        )

    return app


def main() -> None:
    """Console entry point: serve the API on the configured host and port."""
    config = Config()
    ssl_options = {}
    if config.tls_enabled:
        cert, key = CertManager(cert_dir=config.cert_dir).ensure_certificates()
        ssl_options = {"ssl_certfile": cert, "ssl_keyfile": key}

    logger.info(f"Starting PortSurgeon API v{__version__} on {config.server_host}:{config.server_port}")
    uvicorn.run(
        create_app(config=config),
        host=config.server_host,
        port=config.server_port,
        log_level="info",
        **ssl_options,
    )


if __name__ == "__main__":
    main()
