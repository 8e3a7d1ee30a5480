"""Tool executor: validate a parsed call, dispatch it by kind, never raise."""

from __future__ import annotations

import asyncio
import logging
import time

from agent.config import ToolExecutionConfig
from agent.exceptions import ToolValidationError
from agent.messages import ExecutionResult, ToolCall
from tools.base_tool import Tool, ToolContext, ToolKind
from tools.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """
    Runs tool calls for the agent loop.

    execute() is total: unknown tools, missing arguments, timeouts and any
    exception raised while dispatching come back as a failed ExecutionResult.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        settings: ToolExecutionConfig | None = None,
    ):
        self.registry = registry or ToolRegistry()
        self.settings = settings or ToolExecutionConfig()

    def validate(self, call: ToolCall) -> Tool:
        """Return the tool for call, or raise ToolValidationError."""
        tool = self.registry.get_tool(call.name)
        if tool is None:
            raise ToolValidationError(f"Unknown tool: {call.name}")
        missing = [name for name in tool.definition().required_args if name not in call.args]
        if missing:
            raise ToolValidationError(
                ", ".join(f"Missing required parameter: {name}" for name in missing)
            )
        return tool

    async def execute(self, call: ToolCall, context: ToolContext, telemetry=None) -> ExecutionResult:
        try:
            tool = self.validate(call)
        except ToolValidationError as e:
            logger.info("Rejected tool call %s: %s", call.name, e)
            _record(telemetry, call, 0.0, error=str(e))
            return ExecutionResult(success=False, error=str(e))

        if context.settings is None:
            context.settings = self.settings

        start = time.monotonic()
        try:
            args = tool.build_args(call.args)
            result = await self._dispatch(tool, args, context)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            error = f"{call.name} timed out after {self.settings.outbound_timeout:g}s"
            logger.warning(error)
            _record(telemetry, call, _elapsed_ms(start), error=error)
            return ExecutionResult(success=False, error=error)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning("Tool %s failed: %s", call.name, error)
            _record(telemetry, call, _elapsed_ms(start), error=error)
            return ExecutionResult(success=False, error=error)

        _record(telemetry, call, _elapsed_ms(start))
        return ExecutionResult(success=True, result=result)

    async def execute_many(
        self,
        calls: list[ToolCall],
        context: ToolContext,
        telemetry=None,
    ) -> list[ExecutionResult]:
        """
        Execute one iteration's calls. Results keep the calls' order.

        Calls run concurrently unless parallelism is off or a local tool is
        present; local tools share the turn's ToolContext (select_project
        changes the active project) so they run one after another.
        """
        if not self.settings.parallel or len(calls) < 2 or self._touches_local_state(calls):
            return [await self.execute(call, context, telemetry) for call in calls]
        return list(await asyncio.gather(*(self.execute(call, context, telemetry) for call in calls)))

    async def _dispatch(self, tool: Tool, args, context: ToolContext):
        if tool.kind == ToolKind.OUTBOUND:
            return await asyncio.wait_for(
                tool.execute(args, context),
                timeout=self.settings.outbound_timeout,
            )
        return await tool.execute(args, context)

    def _touches_local_state(self, calls: list[ToolCall]) -> bool:
        for call in calls:
            definition = self.registry.get_definition(call.name)
            if definition is not None and definition.kind == ToolKind.LOCAL:
                return True
        return False


def _record(telemetry, call: ToolCall, duration_ms: float, error: str | None = None) -> None:
    if telemetry is None:
        return
    telemetry.record_tool_call(
        tool_name=call.name,
        args=call.args,
        duration_ms=duration_ms,
        error=error,
    )


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
