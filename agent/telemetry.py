"""Telemetry logging for agent turns."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
import json
import os
import threading
import time
from typing import Any

from agent.config import TelemetryConfig

_tracers: dict[str, Any] = {}
_tracer_lock = threading.Lock()


@dataclass
class GenerationMetric:
    """Metrics for a single streamed completion."""
    model: str
    content_chars: int
    reasoning_chars: int
    latency_ms: float
    error: str | None = None


@dataclass
class ToolCallMetric:
    """Metrics for a single tool call."""
    tool_name: str
    args: dict
    duration_ms: float
    error: str | None = None


@dataclass
class LoopIterationMetric:
    """Metrics for a single agent loop iteration."""
    iteration: int
    decision: str  # done | tools | continue | error
    duration_ms: float


@dataclass
class TurnMetrics:
    """Turn-level metrics summary."""
    turn_id: str
    total_iterations: int
    tool_calls: list[ToolCallMetric]
    generations: list[GenerationMetric]
    total_duration_ms: float
    outcome: str
    steps: int = 0
    tool_steps: int = 0
    continuations: int = 0


class Telemetry:
    """Capture structured telemetry for one turn."""

    def __init__(self, config: TelemetryConfig, turn_id: str):
        self.config = config
        self.turn_id = turn_id
        self._lock = threading.Lock()
        self._start_time = time.monotonic()
        self._generations: list[GenerationMetric] = []
        self._tool_calls: list[ToolCallMetric] = []
        self._total_iterations = 0
        self._outcome = ""
        self._counters = {"steps": 0, "tool_steps": 0, "continuations": 0}
        self._log_path: str | None = None
        self._tracer = None

        if self.config.enabled:
            os.makedirs(self.config.log_dir, exist_ok=True)
            self._log_path = os.path.join(self.config.log_dir, f"{turn_id}.jsonl")
            if self.config.otel_enabled:
                self._setup_otel()

    def record_generation(
        self,
        model: str,
        content_chars: int,
        reasoning_chars: int,
        latency_ms: float,
        error: str | None = None,
    ) -> None:
        if not self.config.enabled:
            return
        metric = GenerationMetric(
            model=model,
            content_chars=content_chars,
            reasoning_chars=reasoning_chars,
            latency_ms=latency_ms,
            error=error,
        )
        with self._lock:
            self._generations.append(metric)
        self._log_event("generation", asdict(metric))
        self._emit_span("generation", asdict(metric))

    def record_tool_call(
        self,
        tool_name: str,
        args: dict,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        if not self.config.enabled:
            return
        metric = ToolCallMetric(
            tool_name=tool_name,
            args=args,
            duration_ms=duration_ms,
            error=error,
        )
        with self._lock:
            self._tool_calls.append(metric)
        self._log_event("tool_call", asdict(metric))
        self._emit_span("tool_call", asdict(metric))

    def record_iteration(self, iteration: int, decision: str, duration_ms: float) -> None:
        if not self.config.enabled:
            return
        metric = LoopIterationMetric(
            iteration=iteration,
            decision=decision,
            duration_ms=duration_ms,
        )
        with self._lock:
            self._total_iterations += 1
        self._log_event("loop_iteration", asdict(metric))

    def finalize(
        self,
        outcome: str,
        steps: int = 0,
        tool_steps: int = 0,
        continuations: int = 0,
    ) -> None:
        """Write the turn summary. outcome is 'done', 'error' or 'cancelled'."""
        self._outcome = outcome
        self._counters = {"steps": steps, "tool_steps": tool_steps, "continuations": continuations}
        if not self.config.enabled:
            return
        self._log_event("turn_summary", self.summary_dict())

    def summary(self) -> TurnMetrics:
        total_duration_ms = (time.monotonic() - self._start_time) * 1000
        return TurnMetrics(
            turn_id=self.turn_id,
            total_iterations=self._total_iterations,
            tool_calls=list(self._tool_calls),
            generations=list(self._generations),
            total_duration_ms=total_duration_ms,
            outcome=self._outcome,
            **self._counters,
        )

    def summary_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable summary."""
        summary = self.summary()
        return {
            "turn_id": summary.turn_id,
            "total_iterations": summary.total_iterations,
            "tool_calls": [asdict(m) for m in summary.tool_calls],
            "generations": [asdict(m) for m in summary.generations],
            "total_duration_ms": summary.total_duration_ms,
            "outcome": summary.outcome,
            "steps": summary.steps,
            "tool_steps": summary.tool_steps,
            "continuations": summary.continuations,
        }

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> None:
        if not self.config.enabled or not self._log_path:
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "turn_id": self.turn_id,
            "event": event_type,
            **payload,
        }
        line = json.dumps(record, default=str)
        with self._lock:
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def _emit_span(self, name: str, attributes: dict[str, Any]) -> None:
        if not self._tracer:
            return
        with self._tracer.start_as_current_span(name) as span:
            span.set_attribute("turn_id", self.turn_id)
            for key, value in attributes.items():
                if value is None:
                    continue
                if isinstance(value, (dict, list)):
                    value = json.dumps(value, default=str)
                span.set_attribute(key, value)

    def _setup_otel(self) -> None:
        """Reuse one tracer per service name; the provider is process-global."""
        service_name = self.config.otel_service_name
        with _tracer_lock:
            if service_name in _tracers:
                self._tracer = _tracers[service_name]
                return
            try:
                from opentelemetry import trace
                from opentelemetry.sdk.resources import Resource
                from opentelemetry.sdk.trace import TracerProvider
                from opentelemetry.sdk.trace.export import BatchSpanProcessor
                from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
            except ImportError:
                self._log_event(
                    "telemetry_warning",
                    {"message": "OpenTelemetry is not installed; spans are disabled."},
                )
                return

            provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
            if self.config.otel_endpoint:
                exporter = OTLPSpanExporter(endpoint=self.config.otel_endpoint)
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
            self._tracer = trace.get_tracer(__name__)
            _tracers[service_name] = self._tracer

