"""Agent loop: generate, run tool calls, feed observations back, repeat."""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from agent.config import AgentConfig
from agent.exceptions import PromptTemplateError, ProviderConnectionError, ProviderResponseError
from agent.messages import AgentEvent, AgentState, ChatMessage, ExecutionResult, ToolCall
from agent.models import ChatCompletionClient
from agent.tool_parser import ToolCallParser
from prompts.template_engine import PromptTemplateEngine
from tools.base_tool import ToolContext
from tools.executor import ToolExecutor

logger = logging.getLogger(__name__)


_TOOL_OPEN_RE = re.compile(r'<tool\s+name="')
_TOOL_CLOSE_RE = re.compile(r"</tool>")
_ARG_OPEN_RE = re.compile(r'<arg\s+name="')
_ARG_CLOSE_RE = re.compile(r"</arg>")
# A marker cut off before its closing '>' at the very end of the text.
_PARTIAL_MARKER_RE = re.compile(r"<(?:/?(?:tool|arg)(?:\s[^<>]*)?|/?(?:t|to|too|a|ar)?)\Z")

CONTINUE_PROMPT = (
    "Your previous response was cut off in the middle of a tool call. "
    "Continue exactly where you stopped. Do not repeat what you already wrote "
    "and do not start over."
)
OBSERVATION_FOOTER = (
    "Based on these results, continue your response. If you need more information, "
    "use another tool. Otherwise, provide your final answer."
)


def is_truncated(text: str) -> bool:
    """True when text stops inside a tool or argument marker."""
    if len(_TOOL_OPEN_RE.findall(text)) > len(_TOOL_CLOSE_RE.findall(text)):
        return True
    if len(_ARG_OPEN_RE.findall(text)) > len(_ARG_CLOSE_RE.findall(text)):
        return True
    return _PARTIAL_MARKER_RE.search(text) is not None


def format_observation(call: ToolCall, result: ExecutionResult) -> str:
    if result.success:
        body = json.dumps(result.result, indent=2, default=str)
    else:
        body = f"Error: {result.error}"
    return f"[TOOL OBSERVATION - {call.name}]\n{body}\n[END OBSERVATION]"


class Agent:
    """
    Runs one user turn at a time.

    Each iteration streams one completion over the whole conversation. Text
    that stops inside a tool marker is sent back for a verbatim continuation;
    complete tool calls are executed and their observations appended; text
    with no tool calls ends the turn. The step ceiling bounds generations.
    """

    def __init__(
        self,
        config: AgentConfig,
        client: ChatCompletionClient | None = None,
        executor: ToolExecutor | None = None,
        parser: ToolCallParser | None = None,
        prompt_engine: PromptTemplateEngine | None = None,
    ):
        self.config = config
        self.client = client or ChatCompletionClient.from_config(config)
        self.executor = executor or ToolExecutor(settings=config.tool_execution)
        self.parser = parser or ToolCallParser()
        self._prompt_engine = prompt_engine
        if self._prompt_engine is None:
            try:
                self._prompt_engine = PromptTemplateEngine(profile=config.prompt_profile)
            except PromptTemplateError as e:
                logger.warning("Prompt templates unavailable: %s", e)

    async def run(
        self,
        messages: list[ChatMessage],
        context: ToolContext,
        is_closed: Callable[[], bool] | None = None,
        telemetry=None,
        model: str | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Drive one turn, yielding events as they happen."""
        state = AgentState(messages=list(messages), max_steps=self.config.max_steps)
        model_name = model or self.config.chat_model.model_name
        closed = is_closed or (lambda: False)
        pending = ""  # assistant text from generations cut off mid-marker
        outcome = "cancelled"

        try:
            while True:
                if state.step_count >= state.max_steps:
                    logger.warning("Turn stopped at the step ceiling (%d)", state.max_steps)
                    outcome = "error"
                    yield AgentEvent(type="error", error="Agent reached maximum steps limit")
                    return
                if closed():
                    logger.info("Output closed; stopping after %d generations", state.step_count)
                    return

                state.step_count += 1
                iter_start = time.monotonic()
                full_content = ""
                full_reasoning = ""

                try:
                    async for delta in self.client.stream_chat(
                        model_name,
                        self._build_request(state, context),
                        temperature=self.config.chat_model.temperature,
                    ):
                        if delta.content:
                            full_content += delta.content
                            yield AgentEvent(type="content", content=delta.content)
                        if delta.reasoning:
                            full_reasoning += delta.reasoning
                            yield AgentEvent(type="reasoning", content=delta.reasoning)
                        if closed():
                            break
                except (ProviderConnectionError, ProviderResponseError) as e:
                    logger.error("Generation %d failed: %s", state.step_count, e)
                    self._record_generation(telemetry, model_name, full_content, full_reasoning, iter_start, str(e))
                    self._record_iteration(telemetry, state, "error", iter_start)
                    outcome = "error"
                    yield AgentEvent(type="error", error=str(e))
                    return

                self._record_generation(telemetry, model_name, full_content, full_reasoning, iter_start)
                if closed():
                    return

                text = pending + full_content
                if is_truncated(text):
                    state.continuations += 1
                    logger.info("Generation %d ended mid tool call; requesting continuation", state.step_count)
                    state.append("assistant", full_content, full_reasoning or None)
                    state.append("user", CONTINUE_PROMPT)
                    pending = text
                    self._record_iteration(telemetry, state, "continue", iter_start)
                    continue
                pending = ""

                calls = self.parser.parse(text)
                if not calls:
                    state.append("assistant", full_content, full_reasoning or None)
                    state.complete = True
                    self._record_iteration(telemetry, state, "done", iter_start)
                    outcome = "done"
                    yield AgentEvent(type="done", content=self.parser.strip(text))
                    return

                state.tool_steps += 1
                for call in calls:
                    yield AgentEvent(type="tool_start", tool=call.name, args=call.args)
                results = await self.executor.execute_many(calls, context, telemetry=telemetry)
                for call, result in zip(calls, results):
                    yield AgentEvent(
                        type="tool_result",
                        tool=call.name,
                        success=result.success,
                        result=result.result if result.success else None,
                        error=result.error,
                    )

                state.append("assistant", full_content, full_reasoning or None)
                observations = "\n\n".join(
                    format_observation(call, result) for call, result in zip(calls, results)
                )
                state.append("user", f"{observations}\n\n{OBSERVATION_FOOTER}")
                self._record_iteration(telemetry, state, "tools", iter_start)
        finally:
            if telemetry is not None:
                telemetry.finalize(
                    outcome,
                    steps=state.step_count,
                    tool_steps=state.tool_steps,
                    continuations=state.continuations,
                )

    # ── Prompt assembly ──────────────────────────────────────────────

    def _build_request(self, state: AgentState, context: ToolContext) -> list[ChatMessage]:
        system = ChatMessage(role="system", content=self._build_system_prompt(context))
        return [system] + state.messages

    def _build_system_prompt(self, context: ToolContext) -> str:
        variables = {
            "current_time": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
            "tool_descriptions": self.executor.registry.get_tool_descriptions(),
            "project_context": self._project_context(context),
        }
        if self._prompt_engine is not None:
            try:
                return self._prompt_engine.render("agent.system.main.md", variables)
            except PromptTemplateError as e:
                logger.warning("Falling back to built-in system prompt: %s", e)
        return (
            "You are Overmind, a development assistant.\n\n"
            f"Available tools:\n{variables['tool_descriptions']}\n"
            'Call a tool with <tool name="NAME"><arg name="ARG">VALUE</arg></tool>.'
        )

    @staticmethod
    def _project_context(context: ToolContext) -> str:
        if not context.project_id:
            return ""
        project = None
        if context.project_store is not None:
            project = context.project_store.get_project(context.project_id)
        if project is None:
            return f"## Active Project\n\nID: {context.project_id}"
        lines = ["## Active Project", "", f"Name: {project['name']}", f"ID: {project['id']}"]
        if project.get("description"):
            lines.append(f"Description: {project['description']}")
        return "\n".join(lines)

    # ── Telemetry ────────────────────────────────────────────────────

    @staticmethod
    def _record_generation(telemetry, model, content, reasoning, start, error=None) -> None:
        if telemetry is None:
            return
        telemetry.record_generation(
            model=model,
            content_chars=len(content),
            reasoning_chars=len(reasoning),
            latency_ms=(time.monotonic() - start) * 1000,
            error=error,
        )

    @staticmethod
    def _record_iteration(telemetry, state: AgentState, decision: str, start: float) -> None:
        if telemetry is None:
            return
        telemetry.record_iteration(state.step_count, decision, (time.monotonic() - start) * 1000)
