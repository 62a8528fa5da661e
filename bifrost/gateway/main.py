import uvicorn
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from bifrost.common.errors import BifrostError
from bifrost.common.storage.client import MinioStore
from bifrost.gateway.api import routes
from bifrost.gateway.config import GatewaySettings
from bifrost.gateway.exitspec.table import ExitSpecTable
from bifrost.gateway.launcher.client import LauncherClient
from bifrost.gateway.provisioning.context import ContextProvisioner
from bifrost.gateway.service.jobs import JobService
from bifrost.gateway.utils.logger import logger

settings = GatewaySettings.from_env()
security = HTTPBearer(auto_error=False)

async def verify_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    token = None

    # 1. Check Bearer Header
    if credentials:
        token = credentials.credentials

    # 2. Check Query Parameter (for browser access)
    if not token:
        token = request.query_params.get("token")

    if token != settings.api_token:
        raise HTTPException(status_code=403, detail="Invalid authorization token")

    user = request.headers.get("X-User-Name")
    if user:
        logger.debug(f"Authenticated request from {user}", extra={"event": "auth"})

app = FastAPI(title="Bifrost Job Gateway")

@app.exception_handler(BifrostError)
async def bifrost_error_handler(request: Request, exc: BifrostError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", extra={"event": "request_failed"})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

app.include_router(routes.router, dependencies=[Depends(verify_token)])

@app.get("/health")
async def health():
    return {"status": "ok", "service_ready": routes.service is not None}

def build_service(settings: GatewaySettings) -> JobService:
    # A missing or malformed exit-spec table aborts start-up
    exit_specs = ExitSpecTable.load(settings.exit_spec_path)
    store = MinioStore.from_settings(settings)
    return JobService(
        launcher=LauncherClient(settings),
        store=store,
        provisioner=ContextProvisioner(store, settings),
        exit_specs=exit_specs,
        settings=settings,
    )

@app.on_event("startup")
async def startup():
    routes.service = build_service(settings)
    logger.info(
        f"Bifrost gateway online, launcher at {settings.launcher_uri}, {len(routes.service.exit_specs)} exit codes loaded",
        extra={"event": "startup"},
    )

def run():
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)

if __name__ == "__main__":
    run()
