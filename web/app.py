"""Flask application factory for the overmind web API."""

import asyncio
import logging
import queue
import threading
from flask import Flask, jsonify
from flask_cors import CORS

from agent.agent import Agent
from agent.config import AgentConfig
from agent.messages import AgentEvent
from agent.project_store import ProjectStore
from agent.stream_codec import StreamCodec
from relay.service import RelayService
from tools.executor import ToolExecutor
from tools.tool_registry import ToolRegistry
from web.auth import init_auth

logger = logging.getLogger(__name__)

PLUGIN_ENDPOINTS = ("/api/relay/plugin",)


def create_app(
    config: AgentConfig,
    completion_client=None,
    relay: RelayService | None = None,
    project_store: ProjectStore | None = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    registry = ToolRegistry()
    executor = ToolExecutor(registry, config.tool_execution)

    # Shared state
    app.config["agent_config"] = config
    app.config["tool_registry"] = registry
    app.config["agent"] = Agent(config, client=completion_client, executor=executor)
    app.config["codec"] = StreamCodec.from_config(config.stream)
    app.config["relay"] = relay or RelayService.from_config(config.relay)
    app.config["project_store"] = project_store or ProjectStore(config.storage.projects_path)

    # Remote clients authenticate by credential, not by web login.
    init_auth(app, config.auth, exempt_paths=PLUGIN_ENDPOINTS)

    # Register blueprints
    from web.routes.chat import chat_bp
    from web.routes.relay import relay_bp
    from web.routes.projects import projects_bp
    from web.routes.tools import tools_bp

    app.register_blueprint(chat_bp, url_prefix="/api")
    app.register_blueprint(relay_bp, url_prefix="/api")
    app.register_blueprint(projects_bp, url_prefix="/api")
    app.register_blueprint(tools_bp, url_prefix="/api")

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "tools": registry.tool_names})

    return app


class TurnStream:
    """
    Runs one agent turn on a background thread and hands its events to the
    request thread through a queue. Closing the stream stops the agent before
    its next generation.
    """

    _END = object()

    def __init__(self, agent: Agent):
        self.agent = agent
        self.events: queue.Queue = queue.Queue()
        self._closed = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def start(self, messages, context, telemetry=None, model=None) -> None:
        """Start the agent turn in a background thread."""

        async def drive():
            async for event in self.agent.run(
                messages,
                context,
                is_closed=self._closed.is_set,
                telemetry=telemetry,
                model=model,
            ):
                self.events.put(event)

        def run_in_thread():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                loop.run_until_complete(drive())
            except Exception as e:
                logger.exception("Agent turn crashed")
                self.events.put(AgentEvent(type="error", error=str(e)))
            finally:
                self.events.put(self._END)
                loop.close()

        self._thread = threading.Thread(target=run_in_thread, daemon=True)
        self._thread.start()

    def __iter__(self):
        try:
            while True:
                event = self.events.get()
                if event is self._END:
                    return
                yield event
        finally:
            # Reached on normal exit and when the client hangs up mid-stream.
            self.close()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
