"""
Change-stream client for the control plane.

Opens one long-lived streaming read (``?watch=true``) for a resource path and
decodes the newline-delimited change records as they arrive. The client is
pure transport: it keeps no per-stream state, so a clean stream end simply
returns and the caller decides whether to open it again.

Example:
    >>> from kubemirror.core.config import ControlPlaneConfig
    >>> client = ChangeStreamClient(ControlPlaneConfig(host="https://10.0.0.1:6443"))
    >>> async for event in client.open_stream("/api/v1/namespaces/default/pods"):
    ...     print(event.kind, event.name)
"""

from __future__ import annotations

import json
import logging
import ssl
from collections.abc import AsyncIterator
from typing import Any

import httpx

from kubemirror.core.config.models import ControlPlaneConfig, DecodePolicy
from kubemirror.core.errors import DecodeError, StreamConnectionError
from kubemirror.core.stream.models import ChangeEvent, EventKind

logger = logging.getLogger(__name__)

# Longest slice of a bad record kept in error messages
_RECORD_PREVIEW = 200


def normalize_watch_path(path: str) -> str:
    """
    Normalize a resource path into a streaming-read request path.

    Strips the ``/k8s`` prefix used by the browser-facing proxy, ensures a
    leading slash, and appends ``watch=true`` unless already present.

    Example:
        >>> normalize_watch_path("/k8s/api/v1/pods")
        '/api/v1/pods?watch=true'
        >>> normalize_watch_path("apis/apps/v1/deployments?labelSelector=app")
        '/apis/apps/v1/deployments?labelSelector=app&watch=true'
    """
    if path.startswith("/k8s"):
        path = path[len("/k8s"):]

    if not path.startswith("/"):
        path = "/" + path

    if "watch=true" not in path:
        path = path + ("&watch=true" if "?" in path else "?watch=true")

    return path


def build_ssl_context(config: ControlPlaneConfig) -> ssl.SSLContext | bool:
    """
    Build the TLS settings for the control plane connection.

    Returns False when verification is off and no client certificate is
    configured, otherwise an SSLContext carrying the CA bundle and the
    client certificate.
    """
    if not config.verify_tls and not config.cert_file:
        return False

    context = ssl.create_default_context(cafile=config.ca_file)
    if not config.verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if config.cert_file:
        context.load_cert_chain(config.cert_file, config.key_file)
    return context


class ChangeStreamClient:
    """
    Opens change streams against the control plane.

    One instance may serve any number of concurrent streams; each stream
    holds its own connection from a shared, unbounded httpx pool.

    Attributes:
        config: Control plane connection settings
    """

    def __init__(
        self,
        config: ControlPlaneConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Control plane connection settings
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _auth_headers(self) -> dict[str, str]:
        if self.config.token:
            return {"Authorization": f"Bearer {self.config.token}"}
        return {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: dict[str, Any] = {
                "base_url": self.config.host,
                "headers": self._auth_headers(),
                # Streams are unbounded: only the connect phase may time out
                "timeout": httpx.Timeout(None, connect=self.config.connect_timeout),
                "limits": httpx.Limits(max_connections=None, max_keepalive_connections=20),
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            else:
                kwargs["verify"] = build_ssl_context(self.config)
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ChangeStreamClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def open_stream(self, path: str) -> AsyncIterator[ChangeEvent]:
        """
        Open a streaming read for ``path`` and yield its change events.

        Each line of the response body is decoded independently as soon as it
        arrives. A clean end of the body ends iteration normally.

        Cancelling the consuming task closes the response immediately; no
        further events are yielded.

        Args:
            path: Resource path, e.g. ``/api/v1/namespaces/default/pods``

        Yields:
            ChangeEvent for each record, in stream order

        Raises:
            StreamConnectionError: Dial/TLS/transport failure or non-200 status
            DecodeError: Malformed record when the decode policy is ABORT
        """
        url = normalize_watch_path(path)
        logger.info("Watch request: host=%s url=%s", self.config.host, url)

        try:
            client = self._get_client()
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise StreamConnectionError(
                        path,
                        f"watch request failed with status {response.status_code}: {body}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    event = self._decode_line(path, line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as e:
            raise StreamConnectionError(path, f"error watching {url}: {e}") from e
        except OSError as e:
            # Unreadable certificate or CA file, or a TLS setup failure
            raise StreamConnectionError(
                path, f"error connecting to {self.config.host}: {e}"
            ) from e

        logger.debug("Watch stream ended cleanly for path: %s", path)

    def _decode_line(self, path: str, line: str) -> ChangeEvent | None:
        """Decode one record, applying the configured decode policy."""
        try:
            return decode_record(path, line)
        except DecodeError as e:
            if self.config.decode_policy == DecodePolicy.ABORT:
                raise
            logger.warning("Skipping malformed record on %s: %s", path, e.message)
            return ChangeEvent(kind=EventKind.ERROR, source_path=path, error=str(e))


def decode_record(path: str, line: str) -> ChangeEvent:
    """
    Decode one newline-delimited change record.

    Control-plane ``ERROR`` records carry a Status object; its message becomes
    the event's error text.

    Raises:
        DecodeError: If the line is not a JSON object with a known ``type``
    """
    preview = line[:_RECORD_PREVIEW]
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise DecodeError(path, f"error decoding watch event: {e}", record=preview) from e

    if not isinstance(record, dict):
        raise DecodeError(path, "watch event is not a JSON object", record=preview)

    try:
        kind = EventKind(record.get("type"))
    except ValueError:
        raise DecodeError(
            path, f"unknown watch event type: {record.get('type')!r}", record=preview
        ) from None

    obj = record.get("object")
    if obj is not None and not isinstance(obj, dict):
        raise DecodeError(path, "watch event object is not a JSON object", record=preview)

    error = None
    if kind == EventKind.ERROR:
        error = (obj or {}).get("message") or "watch error reported by control plane"

    return ChangeEvent(kind=kind, object=obj, source_path=path, error=error)


__all__ = [
    "ChangeStreamClient",
    "build_ssl_context",
    "decode_record",
    "normalize_watch_path",
]
