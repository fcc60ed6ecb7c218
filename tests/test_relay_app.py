"""Tests for the relay FastAPI application and its /ws endpoint."""

import pytest
from fastapi.testclient import TestClient

from kubemirror.core.config.models import KubeMirrorConfig, RelayConfig
from kubemirror.core.relay.app import create_app
from kubemirror.core.stream.models import ChangeEvent, EventKind

PODS = "/api/v1/namespaces/default/pods"


def _pod(name: str) -> ChangeEvent:
    return ChangeEvent(
        kind=EventKind.ADDED,
        object={"apiVersion": "v1", "kind": "Pod", "metadata": {"name": name}},
    )


@pytest.fixture
def config():
    return KubeMirrorConfig(relay=RelayConfig(stats_interval=0))


class TestHttpRoutes:
    def test_root(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/health")
        assert response.json() == {"status": "healthy", "sessions": 0}


class TestKindRoutes:
    def test_list_kinds(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/kinds", params={"namespace": "web"})

        assert response.status_code == 200
        by_id = {kind["kind_id"]: kind for kind in response.json()}
        assert by_id["apps/Deployment"]["watch_path"] == (
            "/apis/apps/v1/namespaces/web/deployments?watch=true"
        )
        assert by_id["apps/Deployment"]["children"] == ["apps/ReplicaSet"]
        assert by_id["apps/ReplicaSet"]["hidden"] is True
        assert by_id["core/PersistentVolume"]["watch_path"] == "/api/v1/persistentvolumes?watch=true"

    def test_get_kind(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/kinds/rbac.authorization.k8s.io/Role")

        assert response.status_code == 200
        assert response.json()["plural"] == "roles"

    def test_unknown_kind_is_not_found(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/kinds/example.com/Widget")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "NOT_FOUND"
        assert body["message"] == "Unknown kind: example.com/Widget"

    def test_bad_namespace_is_a_validation_error(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/kinds", params={"namespace": "Not_Valid"})

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["detail"].startswith("query -> namespace")


class TestErrorResponses:
    def test_unknown_route(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_wrong_method(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        response = client.post("/health")

        assert response.status_code == 405
        assert response.json()["error_code"] == "INVALID_REQUEST"

    def test_unhandled_error_is_a_clean_500(self, config, scripted_source):
        class BrokenRegistry:
            def __iter__(self):
                raise RuntimeError("registry unavailable")

        app = create_app(config, source=scripted_source(), registry=BrokenRegistry())
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/kinds")

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["message"] == "An internal server error occurred"


class TestWebSocket:
    def test_ready_on_connect(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"id": "", "type": "ready", "path": ""}

    def test_subscribe_streams_events(self, config, scripted_source):
        source = scripted_source({PODS: [_pod("pod-a"), _pod("pod-b")]})
        client = TestClient(create_app(config, source=source))

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"id": "s1", "action": "subscribe", "path": PODS})

            assert ws.receive_json()["data"] == {"type": "subscribed"}
            first = ws.receive_json()
            second = ws.receive_json()

        assert first["type"] == "data"
        assert first["id"] == "s1"
        names = [frame["data"]["object"]["metadata"]["name"] for frame in (first, second)]
        assert names == ["pod-a", "pod-b"]

    def test_duplicate_subscribe_over_socket(self, config, scripted_source):
        source = scripted_source({PODS: [_pod("pod-a")]})
        client = TestClient(create_app(config, source=source))

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"id": "s1", "action": "subscribe", "path": PODS})
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"id": "s2", "action": "subscribe", "path": PODS})
            error = ws.receive_json()

        assert error == {
            "id": "s2",
            "type": "error",
            "path": PODS,
            "error": "already subscribed to this path",
        }
        assert source.opened == [PODS]

    def test_unsubscribe_ack(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"id": "s1", "action": "subscribe", "path": PODS})
            ws.receive_json()
            ws.send_json({"id": "s1", "action": "unsubscribe", "path": PODS})
            ack = ws.receive_json()

        assert ack == {
            "id": "s1",
            "type": "status",
            "path": PODS,
            "data": {"type": "unsubscribed"},
        }

    def test_bad_frame(self, config, scripted_source):
        client = TestClient(create_app(config, source=scripted_source()))

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json()["error"] == "invalid message format"

    def test_session_removed_on_disconnect(self, config, scripted_source):
        app = create_app(config, source=scripted_source())
        client = TestClient(app)

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert len(app.state.sessions) == 1
            ws.send_json({"id": "s1", "action": "subscribe", "path": PODS})
            ws.receive_json()

        assert client.get("/health").json()["sessions"] == 0
