"""
Configuration data models for kubemirror.

These models define the structure of .kubemirror.json and
~/.config/kubemirror/config.json files, with validation and type safety via
Pydantic.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DecodePolicy(str, Enum):
    """What the change-stream client does with a malformed record."""

    SKIP = "skip"  # log, surface an Error event, keep reading
    ABORT = "abort"  # raise DecodeError and end the stream


DEFAULT_HIDDEN_KINDS: list[str] = [
    "apps/ReplicaSet",
    "rbac.authorization.k8s.io/Role",
    "rbac.authorization.k8s.io/RoleBinding",
    "rbac.authorization.k8s.io/ClusterRole",
    "rbac.authorization.k8s.io/ClusterRoleBinding",
    "core/ServiceAccount",
]


class ControlPlaneConfig(BaseModel):
    """
    Connection settings for the control plane API server.

    Authentication is either a bearer token or a client certificate; both may
    be set, in which case the token header is sent over the mutual-TLS
    connection.
    """
    host: str = Field(
        default="https://127.0.0.1:6443",
        description="Base URL of the API server"
    )
    token: str | None = Field(
        default=None,
        description="Bearer token sent in the Authorization header"
    )
    cert_file: str | None = Field(
        default=None,
        description="Client certificate (PEM) for mutual TLS"
    )
    key_file: str | None = Field(
        default=None,
        description="Private key (PEM) matching cert_file"
    )
    ca_file: str | None = Field(
        default=None,
        description="CA bundle used to verify the API server"
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify the API server certificate"
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds to wait when opening a stream"
    )
    decode_policy: DecodePolicy = Field(
        default=DecodePolicy.SKIP,
        description="Handling of malformed change records: 'skip' or 'abort'"
    )

    @field_validator("host")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class RelayConfig(BaseModel):
    """
    Settings for the WebSocket subscription relay.
    """
    host: str = Field(
        default="127.0.0.1",
        description="Interface the relay binds to"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the relay listens on"
    )
    queue_capacity: int = Field(
        default=100,
        ge=1,
        description="Per-subscription event queue size; a full queue stalls the reader"
    )
    stats_interval: float = Field(
        default=1.0,
        ge=0.0,
        description="Seconds between stats messages (0 disables them)"
    )
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="CORS origins allowed to call the HTTP routes"
    )


class MirrorConfig(BaseModel):
    """
    Client-side mirror behavior.
    """
    coalesce_window: float = Field(
        default=0.04,
        ge=0.0,
        description="Quiescence window (seconds) before a recompute runs"
    )
    reconnect_base_delay: float = Field(
        default=1.0,
        gt=0.0,
        description="First reconnect delay in seconds"
    )
    reconnect_max_delay: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound on the reconnect delay"
    )
    reconnect_max_attempts: int = Field(
        default=10,
        ge=1,
        description="Give up after this many reconnect attempts"
    )


class GraphConfig(BaseModel):
    """
    Relationship graph rendering settings.
    """
    page_size: int = Field(
        default=5,
        ge=1,
        description="Same-kind children shown per page before paginating"
    )
    hidden_kinds: list[str] = Field(
        default_factory=lambda: list(DEFAULT_HIDDEN_KINDS),
        description="Kinds hidden from the graph by default"
    )


class KubeMirrorConfig(BaseModel):
    """
    Top-level kubemirror configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = KubeMirrorConfig(
        ...     control_plane=ControlPlaneConfig(host="https://10.0.0.1:6443"),
        ...     relay=RelayConfig(port=9090),
        ... )
        >>> config.relay.queue_capacity
        100
    """
    control_plane: ControlPlaneConfig = Field(
        default_factory=ControlPlaneConfig,
        description="Control plane connection"
    )
    relay: RelayConfig = Field(
        default_factory=RelayConfig,
        description="Subscription relay"
    )
    mirror: MirrorConfig = Field(
        default_factory=MirrorConfig,
        description="Client-side mirror"
    )
    graph: GraphConfig = Field(
        default_factory=GraphConfig,
        description="Relationship graph"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )
