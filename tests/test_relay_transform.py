"""Tests for relay object transforms: managedFields stripping and projection."""

import json

from kubemirror.core.relay.protocol import ClientMessage, MessageType, ServerMessage
from kubemirror.core.relay.transform import (
    parse_projection_fields,
    project_object,
    strip_managed_fields,
    transform_object,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _deployment() -> dict:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": "web",
            "namespace": "prod",
            "uid": "1234",
            "labels": {"app": "web"},
            "resourceVersion": "42",
            "managedFields": [{"manager": "kubectl", "operation": "Apply"}],
        },
        "spec": {
            "replicas": 3,
            "template": {
                "spec": {
                    "containers": [
                        {"name": "app", "image": "web:1", "ports": [{"containerPort": 80}]},
                        {"name": "sidecar", "image": "proxy:2"},
                    ]
                }
            },
        },
        "status": {"readyReplicas": 2},
    }


# ---------------------------------------------------------------------------
# Projection field parsing
# ---------------------------------------------------------------------------


class TestParseProjectionFields:
    def test_json_array(self) -> None:
        assert parse_projection_fields('["spec.replicas", "status"]') == [
            "spec.replicas",
            "status",
        ]

    def test_comma_list(self) -> None:
        assert parse_projection_fields(" spec.replicas , status,, ") == ["spec.replicas", "status"]

    def test_empty(self) -> None:
        assert parse_projection_fields(None) == []
        assert parse_projection_fields("   ") == []

    def test_broken_json_falls_back_to_commas(self) -> None:
        assert parse_projection_fields("[spec.replicas") == ["[spec.replicas"]


# ---------------------------------------------------------------------------
# managedFields stripping
# ---------------------------------------------------------------------------


class TestStripManagedFields:
    def test_removes_and_counts_bytes(self) -> None:
        obj = _deployment()
        stripped, removed = strip_managed_fields(obj)

        assert "managedFields" not in stripped["metadata"]
        expected = len(json.dumps(obj, separators=(",", ":"))) - len(
            json.dumps(stripped, separators=(",", ":"))
        )
        assert removed == expected > 0

    def test_leaves_input_untouched(self) -> None:
        obj = _deployment()
        strip_managed_fields(obj)
        assert "managedFields" in obj["metadata"]

    def test_nested_occurrences(self) -> None:
        obj = {"items": [{"metadata": {"name": "a", "managedFields": []}}]}
        stripped, _ = strip_managed_fields(obj)
        assert stripped == {"items": [{"metadata": {"name": "a"}}]}

    def test_nothing_to_strip(self) -> None:
        stripped, removed = strip_managed_fields({"kind": "Pod"})
        assert stripped == {"kind": "Pod"}
        assert removed == 0


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


class TestProjectObject:
    def test_no_fields_returns_object(self) -> None:
        obj = _deployment()
        assert project_object(obj, []) is obj

    def test_keeps_identity_and_requested_paths(self) -> None:
        projected = project_object(_deployment(), ["spec.replicas", "status.readyReplicas"])

        assert projected == {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": "web",
                "namespace": "prod",
                "labels": {"app": "web"},
                "resourceVersion": "42",
            },
            "spec": {"replicas": 3},
            "status": {"readyReplicas": 2},
        }

    def test_list_wildcard(self) -> None:
        projected = project_object(
            _deployment(), ["spec.template.spec.containers.*.image"]
        )
        containers = projected["spec"]["template"]["spec"]["containers"]
        assert containers == [{"image": "web:1"}, {"image": "proxy:2"}]

    def test_bracket_wildcard_merges_with_other_paths(self) -> None:
        projected = project_object(
            _deployment(),
            [
                "spec.template.spec.containers.[*].name",
                "spec.template.spec.containers.[*].image",
            ],
        )
        containers = projected["spec"]["template"]["spec"]["containers"]
        assert containers == [
            {"name": "app", "image": "web:1"},
            {"name": "sidecar", "image": "proxy:2"},
        ]

    def test_missing_paths_are_ignored(self) -> None:
        projected = project_object(_deployment(), ["spec.paused", "nope.deeper"])
        assert "spec" not in projected
        assert projected["metadata"]["name"] == "web"

    def test_transform_strips_then_projects(self) -> None:
        obj, removed = transform_object(_deployment(), ["metadata.uid"])
        assert obj["metadata"]["uid"] == "1234"
        assert "managedFields" not in obj["metadata"]
        assert removed > 0


# ---------------------------------------------------------------------------
# Wire messages
# ---------------------------------------------------------------------------


class TestWireMessages:
    def test_parse_subscribe_frame(self) -> None:
        message = ClientMessage.parse_frame(
            '{"id": "a1", "action": "subscribe", "path": "/api/v1/pods", '
            '"params": {"fields": "spec"}}'
        )
        assert message.id == "a1"
        assert message.params == {"fields": "spec"}

    def test_server_message_omits_empty_fields(self) -> None:
        wire = ServerMessage(type=MessageType.READY).to_wire()
        assert wire == {"id": "", "type": "ready", "path": ""}

    def test_error_message_wire_shape(self) -> None:
        wire = ServerMessage(
            id="a1", type=MessageType.ERROR, path="/p", error="not subscribed to this path"
        ).to_wire()
        assert wire == {
            "id": "a1",
            "type": "error",
            "path": "/p",
            "error": "not subscribed to this path",
        }
