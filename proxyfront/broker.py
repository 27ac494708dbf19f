"""HTTP broker exposing proxy deployment, forwarding and administration."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from proxyfront import __version__
from proxyfront.abi import AbiError, parse_hex, to_address, to_hex
from proxyfront.errors import (
    CallReverted,
    InitializationError,
    InvalidValueError,
    NoImplementationError,
    NotAContractError,
    Revert,
    SetupCallFailedError,
    UnauthorizedError,
    UnknownCodeKindError,
    ZeroAdminError,
)
from proxyfront.host import ExecutionHost
from proxyfront.proxy import PROXY_KIND, ProxyHandle
from proxyfront.runtime import get_host
from proxyfront.schemas import (
    ADDRESS_PATTERN,
    CallRequest,
    CallResponse,
    ChangeAdminRequest,
    DeployLogicRequest,
    DeployProxyRequest,
    DeployResponse,
    ErrorResponse,
    HealthResponse,
    LogEntry,
    ProxyState,
    UpgradeAndCallRequest,
    UpgradeRequest,
)

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="proxyfront Broker",
    description="HTTP broker for upgradeable proxy fronts",
    version=__version__,
)

# Revert type -> HTTP status; anything else reverting maps to 422
REVERT_STATUS: dict[type[Revert], int] = {
    UnauthorizedError: 403,
    NotAContractError: 400,
    ZeroAdminError: 400,
    InvalidValueError: 400,
    NoImplementationError: 409,
    CallReverted: 422,
    InitializationError: 422,
    SetupCallFailedError: 422,
}


def _proxy(host: ExecutionHost, address: str) -> ProxyHandle:
    """Resolve a handle, rejecting addresses that are not proxy fronts."""
    try:
        address = to_address(address)
    except AbiError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if host.code_kind(address) != PROXY_KIND:
        raise HTTPException(status_code=404, detail=f"No proxy deployed at {address}")
    return ProxyHandle(host=host, address=address)


def _transact(host: ExecutionHost, proxy: ProxyHandle, payload: bytes, sender: str, value: int) -> CallResponse:
    since = host.state.last_event_seq()
    return_data = proxy.call(payload, sender=sender, value=value)
    return CallResponse(return_data=to_hex(return_data), events=host.events(since=since))


# --- HTTP Endpoints ---


@app.post("/deploy/logic", response_model=DeployResponse)
async def deploy_logic(request: DeployLogicRequest) -> DeployResponse:
    """Deploy a registered logic component."""
    host = get_host()
    if request.kind == PROXY_KIND:
        raise HTTPException(status_code=400, detail="Use /deploy/proxy to deploy a proxy front")

    address = host.deploy(request.kind, sender=request.sender)
    return DeployResponse(address=address, kind=request.kind)


@app.post("/deploy/proxy", response_model=DeployResponse)
async def deploy_proxy(request: DeployProxyRequest) -> DeployResponse:
    """Deploy a proxy front pointing at an existing logic component."""
    host = get_host()
    logger.info(f"Deploying proxy: logic={request.logic}, admin={request.admin}")

    proxy = ProxyHandle.deploy(
        host,
        request.logic,
        request.admin,
        parse_hex(request.setup_payload),
        sender=request.sender,
        value=request.value,
    )
    return DeployResponse(address=proxy.address, kind=PROXY_KIND)


@app.get("/proxies/{address}", response_model=ProxyState)
async def proxy_state(address: str) -> ProxyState:
    """Read the proxy's implementation and admin."""
    return _proxy(get_host(), address).state()


@app.post("/proxies/{address}/call", response_model=CallResponse)
async def call(address: str, request: CallRequest) -> CallResponse:
    """Send an opaque payload through the proxy.

    Admin selectors are handled by the proxy; everything else is forwarded.
    """
    host = get_host()
    proxy = _proxy(host, address)
    return _transact(host, proxy, parse_hex(request.payload), request.sender, request.value)


@app.post("/proxies/{address}/static_call", response_model=CallResponse)
async def static_call(address: str, request: CallRequest) -> CallResponse:
    """Evaluate a payload through the proxy without persisting anything."""
    host = get_host()
    proxy = _proxy(host, address)
    return_data = proxy.static_call(parse_hex(request.payload), sender=request.sender)
    return CallResponse(return_data=to_hex(return_data))


@app.post("/proxies/{address}/upgrade", response_model=CallResponse)
async def upgrade(address: str, request: UpgradeRequest) -> CallResponse:
    """Replace the active logic (admin only)."""
    host = get_host()
    proxy = _proxy(host, address)
    since = host.state.last_event_seq()
    proxy.upgrade_to(request.new_logic, sender=request.sender)
    return CallResponse(return_data="0x", events=host.events(since=since))


@app.post("/proxies/{address}/upgrade_and_call", response_model=CallResponse)
async def upgrade_and_call(address: str, request: UpgradeAndCallRequest) -> CallResponse:
    """Replace the active logic and delegate one setup call (admin only)."""
    host = get_host()
    proxy = _proxy(host, address)
    since = host.state.last_event_seq()
    proxy.upgrade_to_and_call(
        request.new_logic,
        parse_hex(request.payload),
        sender=request.sender,
        value=request.value,
    )
    return CallResponse(return_data="0x", events=host.events(since=since))


@app.post("/proxies/{address}/change_admin", response_model=CallResponse)
async def change_admin(address: str, request: ChangeAdminRequest) -> CallResponse:
    """Transfer administration (admin only)."""
    host = get_host()
    proxy = _proxy(host, address)
    since = host.state.last_event_seq()
    proxy.change_admin(request.new_admin, sender=request.sender)
    return CallResponse(return_data="0x", events=host.events(since=since))


@app.get("/events", response_model=list[LogEntry])
async def events(
    emitter: str | None = Query(default=None, pattern=ADDRESS_PATTERN),
    name: str | None = None,
    since: int = Query(default=0, ge=0),
) -> list[LogEntry]:
    """List emitted events, oldest first."""
    return get_host().events(emitter=emitter, name=name, since=since)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check broker and state database health."""
    host = get_host()
    stats = host.state.stats()
    return HealthResponse(
        broker="healthy",
        db_path=host.state.db_path,
        code_count=stats.code_count,
        account_count=stats.account_count,
        event_count=stats.event_count,
    )


@app.exception_handler(Revert)
async def revert_exception_handler(request, exc: Revert) -> JSONResponse:
    """Translate a reverted call into an error response carrying its revert data."""
    status_code = REVERT_STATUS.get(type(exc), 422)
    logger.info(f"Call reverted with {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            detail=str(exc),
            error_code=type(exc).__name__,
            data=to_hex(exc.data),
        ).model_dump(),
    )


@app.exception_handler(UnknownCodeKindError)
async def unknown_kind_exception_handler(request, exc: UnknownCodeKindError) -> JSONResponse:
    """Handle deploys of unregistered kinds."""
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(detail=str(exc), error_code="UNKNOWN_KIND").model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail=str(exc),
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )
