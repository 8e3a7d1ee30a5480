import json
from pathlib import Path

import pytest

from agent.config import load_config
from agent.messages import StreamDelta
from agent.stream_codec import FrameDecoder
from web.app import create_app
from web.auth import hash_password


class ScriptedClient:
    def __init__(self, replies):
        self.replies = list(replies)

    async def stream_chat(self, model, messages, temperature=0.7):
        for chunk in self.replies.pop(0):
            yield StreamDelta(content=chunk)


def _make_app(tmp_path: Path, config_data: dict | None = None, replies=()):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"data_dir": str(tmp_path / "data"), **(config_data or {})}))
    config = load_config(str(config_path))
    app = create_app(config, completion_client=ScriptedClient(replies))
    app.testing = True
    return app


def _decode(app, resp) -> list[dict]:
    decoder = FrameDecoder(app.config["codec"])
    events = decoder.feed(resp.get_data())
    assert decoder.done
    return events


def test_chat_streams_encoded_frames(tmp_path):
    app = _make_app(tmp_path, replies=[["Hi ", "there"]])
    client = app.test_client()

    resp = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hello"}]})
    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    assert resp.headers["X-Turn-Id"]
    raw = resp.get_data(as_text=True)
    assert "Hi there" not in raw

    events = _decode(app, resp)
    assert [e["type"] for e in events] == ["content", "content", "done"]
    assert events[-1]["content"] == "Hi there"


def test_chat_runs_tools_and_queues_relay_signal(tmp_path):
    replies = [
        ['<tool name="create_file"><arg name="path">src/a.lua</arg>', '<arg name="content">print(1)</arg></tool>'],
        ["Created."],
    ]
    app = _make_app(tmp_path, replies=replies)
    client = app.test_client()
    client.post("/api/relay/plugin", json={"action": "connect", "apiKey": "K"})

    resp = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "make a file"}], "credential": "K"},
    )
    events = _decode(app, resp)
    result = next(e for e in events if e["type"] == "tool_result")
    assert result["success"] is True
    assert result["result"]["queued"] is True

    poll = client.post("/api/relay/plugin", json={"action": "poll", "apiKey": "K"}).get_json()
    assert [s["action"] for s in poll["signals"]] == ["create_file"]
    assert poll["signals"][0]["data"] == {"path": "src/a.lua", "content": "print(1)"}


def test_chat_without_streaming(tmp_path):
    app = _make_app(tmp_path, replies=[["Plain ", "answer"]])
    resp = app.test_client().post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "hi"}], "stream": False},
    )
    data = resp.get_json()
    assert data["content"] == "Plain answer"
    assert data["error"] is None
    assert data["turn_id"]


def test_chat_accepts_encrypted_body(tmp_path):
    app = _make_app(tmp_path, replies=[["ok"]])
    codec = app.config["codec"]
    body = codec.conceal(json.dumps({"messages": [{"role": "user", "content": "hi"}], "stream": False}))
    resp = app.test_client().post("/api/chat", json={"encrypted": body})
    assert resp.get_json()["content"] == "ok"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"messages": []},
        {"messages": [{"role": "robot", "content": "x"}]},
        {"messages": ["not an object"]},
        {"encrypted": "%%%"},
    ],
)
def test_chat_rejects_bad_requests(tmp_path, body):
    app = _make_app(tmp_path)
    resp = app.test_client().post("/api/chat", json=body)
    assert resp.status_code == 400


def test_plugin_lifecycle(tmp_path):
    app = _make_app(tmp_path)
    client = app.test_client()

    resp = client.post("/api/relay/plugin", json={"action": "poll", "apiKey": "K"})
    assert resp.status_code == 401
    assert resp.get_json()["live"] is False

    assert client.post("/api/relay/plugin", json={"action": "connect", "apiKey": "K"}).status_code == 200
    assert client.post("/api/relay/plugin", json={"action": "ping", "apiKey": "K"}).status_code == 200

    sent = client.post(
        "/api/relay/web",
        json={
            "action": "send_signal",
            "data": {"credential": "K", "signalAction": "refresh", "signalData": {"deep": True}},
        },
    ).get_json()
    assert sent["accepted"] is True
    assert sent["deliveredToLiveCount"] == 1

    polled = client.get("/api/relay/plugin?apiKey=K").get_json()
    assert polled["live"] is True
    assert polled["signals"][0]["id"] == sent["signalIds"][0]
    assert client.get("/api/relay/plugin?apiKey=K").get_json()["signals"] == []

    assert client.post("/api/relay/plugin", json={"action": "disconnect", "apiKey": "K"}).status_code == 200
    assert client.post("/api/relay/plugin", json={"action": "ping", "apiKey": "K"}).status_code == 401
    assert client.get("/api/relay/plugin?apiKey=K").get_json()["live"] is False


def test_plugin_requires_api_key_and_known_action(tmp_path):
    client = _make_app(tmp_path).test_client()
    assert client.post("/api/relay/plugin", json={"action": "connect"}).status_code == 401
    assert client.post("/api/relay/plugin", json={"action": "dance", "apiKey": "K"}).status_code == 400


def test_web_check_connection_and_errors(tmp_path):
    client = _make_app(tmp_path).test_client()
    resp = client.post("/api/relay/web", json={"action": "check_connection", "data": {"ownerId": "u1"}})
    assert resp.get_json() == {"success": True, "live": False}

    client.post("/api/relay/plugin", json={"action": "connect", "apiKey": "K", "ownerId": "u1"})
    resp = client.post("/api/relay/web", json={"action": "check_connection", "data": {"ownerId": "u1"}})
    assert resp.get_json()["live"] is True

    resp = client.post("/api/relay/web", json={"action": "send_signal", "data": {"signalAction": "x"}})
    assert resp.status_code == 400


def test_auth_guards_web_routes_but_not_plugin(tmp_path):
    config = {"auth": {"enabled": True, "username": "admin", "password_hash": hash_password("pw"), "api_key": "secret"}}
    client = _make_app(tmp_path, config).test_client()

    assert client.get("/api/health").status_code == 401
    assert client.get("/api/health", headers={"X-API-Key": "secret"}).status_code == 200
    assert client.get("/api/health", headers={"Authorization": "Bearer secret"}).status_code == 200
    assert client.get("/api/health", auth=("admin", "pw")).status_code == 200
    assert client.get("/api/health", auth=("admin", "wrong")).status_code == 401
    assert client.post("/api/relay/plugin", json={"action": "connect", "apiKey": "K"}).status_code == 200


def test_projects_and_tasks_routes(tmp_path):
    client = _make_app(tmp_path).test_client()

    resp = client.post("/api/projects", json={"user_id": "u1", "name": "Obby"})
    assert resp.status_code == 201
    project_id = resp.get_json()["project"]["id"]
    assert [p["id"] for p in client.get("/api/projects?user_id=u1").get_json()["projects"]] == [project_id]

    resp = client.post("/api/tasks", json={"project_id": project_id, "user_id": "u1", "title": "Lobby"})
    assert resp.status_code == 201
    task_id = resp.get_json()["task"]["id"]

    resp = client.patch("/api/tasks", json={"id": task_id, "status": "completed"})
    assert resp.get_json()["task"]["status"] == "completed"
    assert client.patch("/api/tasks", json={"id": task_id, "status": "nope"}).status_code == 400
    assert client.patch("/api/tasks", json={"id": "missing", "status": "completed"}).status_code == 404

    tasks = client.get(f"/api/tasks?project_id={project_id}&status=completed").get_json()["tasks"]
    assert [t["id"] for t in tasks] == [task_id]
    missing = client.post("/api/tasks", json={"project_id": "missing", "user_id": "u1", "title": "x"})
    assert missing.status_code == 404


def test_tool_catalogue_and_validation(tmp_path):
    client = _make_app(tmp_path).test_client()
    tools = client.get("/api/tools").get_json()["tools"]
    assert "create_object" in {t["name"] for t in tools}
    assert client.post("/api/tools/search", json={}).status_code == 400
    assert client.post("/api/tools/outline", json={"url": "ftp://x"}).status_code == 400
