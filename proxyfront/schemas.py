"""Pydantic schemas for proxyfront results and HTTP request/response contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from proxyfront.abi import MAX_UINT256

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
HEX_PATTERN = r"^0x([0-9a-fA-F]{2})*$"


# --- Host results ---


class CallOutcome(BaseModel):
    """Result of a nested call: success flag plus raw return or revert data."""

    success: bool
    return_data: bytes = b""


class LogEntry(BaseModel):
    """One emitted event."""

    seq: int
    emitter: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ProxyState(BaseModel):
    """The proxy's two administrative values."""

    address: str = Field(..., pattern=ADDRESS_PATTERN)
    implementation: str = Field(..., pattern=ADDRESS_PATTERN)
    admin: str = Field(..., pattern=ADDRESS_PATTERN)


# --- Request Schemas ---


class DeployLogicRequest(BaseModel):
    """Request to deploy a registered logic component."""

    kind: str = Field(..., min_length=1, description="Registered code kind, e.g. counter-v1")
    sender: str = Field(..., pattern=ADDRESS_PATTERN)


class DeployProxyRequest(BaseModel):
    """Request to deploy a proxy front."""

    logic: str = Field(..., pattern=ADDRESS_PATTERN, description="Initial logic address")
    admin: str = Field(..., pattern=ADDRESS_PATTERN, description="Initial administrator")
    sender: str = Field(..., pattern=ADDRESS_PATTERN)
    setup_payload: str = Field(
        default="0x",
        pattern=HEX_PATTERN,
        max_length=2 + 2 * 64 * 1024,
        description="Optional payload delegated to the logic once at construction",
    )
    value: int = Field(default=0, ge=0, le=MAX_UINT256)


class CallRequest(BaseModel):
    """Request to invoke a proxy with an opaque payload."""

    sender: str = Field(..., pattern=ADDRESS_PATTERN)
    payload: str = Field(default="0x", pattern=HEX_PATTERN)
    value: int = Field(default=0, ge=0, le=MAX_UINT256)


class UpgradeRequest(BaseModel):
    """Request to replace the active logic."""

    sender: str = Field(..., pattern=ADDRESS_PATTERN)
    new_logic: str = Field(..., pattern=ADDRESS_PATTERN)


class UpgradeAndCallRequest(BaseModel):
    """Request to replace the active logic and delegate one setup call."""

    sender: str = Field(..., pattern=ADDRESS_PATTERN)
    new_logic: str = Field(..., pattern=ADDRESS_PATTERN)
    payload: str = Field(default="0x", pattern=HEX_PATTERN)
    value: int = Field(default=0, ge=0, le=MAX_UINT256)


class ChangeAdminRequest(BaseModel):
    """Request to transfer administration."""

    sender: str = Field(..., pattern=ADDRESS_PATTERN)
    new_admin: str = Field(..., pattern=ADDRESS_PATTERN)


# --- Response Schemas ---


class DeployResponse(BaseModel):
    """Address of newly deployed code."""

    address: str = Field(..., pattern=ADDRESS_PATTERN)
    kind: str


class CallResponse(BaseModel):
    """Return data of a successful call, plus events it emitted."""

    return_data: str = Field(..., pattern=HEX_PATTERN)
    events: list[LogEntry] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    error_code: str | None = None
    data: str | None = Field(default=None, description="Revert payload as hex")


class HealthResponse(BaseModel):
    """Health check response."""

    broker: Literal["healthy", "unhealthy"] = "healthy"
    db_path: str
    code_count: int = 0
    account_count: int = 0
    event_count: int = 0
