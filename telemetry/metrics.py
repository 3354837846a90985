"""
Latency, token and cost records for model calls.

A `MetricsRecorder` appends rows to a local CSV file and, when given a sink
(any store with `record_metric(row)`), forwards them there too. Both writes
are best effort: a failure is logged and the chat turn carries on.
"""

from __future__ import annotations

import csv
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

CSV_FILENAME = "cost_log.csv"
CSV_COLUMNS = [
    "timestamp",
    "component",
    "model_or_tool",
    "tokens_in",
    "tokens_out",
    "latency_ms",
    "cost_usd",
    "conversation_id",
]

# Approximate per-1K token pricing in USD.
MODEL_PRICING_PER_1K = {
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "o4-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4.1-mini": {"input": 0.0004, "output": 0.0016},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}


class MetricSink(Protocol):
    def record_metric(self, row: Dict[str, Any]) -> Any:
        ...


def estimate_openai_cost(model: Optional[str], tokens_in: Optional[int], tokens_out: Optional[int]) -> Optional[float]:
    """Rudimentary USD cost estimate using static per-1K token pricing."""
    if model is None:
        return None
    pricing = MODEL_PRICING_PER_1K.get(model.lower())
    if pricing is None:
        return None
    cost = 0.0
    if tokens_in:
        cost += (tokens_in / 1000.0) * pricing["input"]
    if tokens_out:
        cost += (tokens_out / 1000.0) * pricing["output"]
    return round(cost, 6)


def extract_usage_tokens(obj: Any) -> Tuple[Optional[int], Optional[int]]:
    """Pull token counts from OpenAI responses or usage payloads."""
    usage = getattr(obj, "usage", None)
    if isinstance(obj, dict) and not usage:
        usage = obj.get("usage")
    if usage is None:
        return None, None
    if isinstance(usage, dict):
        prompt = usage.get("prompt_tokens") or usage.get("input_tokens")
        completion = usage.get("completion_tokens") or usage.get("output_tokens")
    else:
        prompt = getattr(usage, "prompt_tokens", None) or getattr(usage, "input_tokens", None)
        completion = getattr(usage, "completion_tokens", None) or getattr(usage, "output_tokens", None)
    return prompt, completion


class MetricsRecorder:
    def __init__(
        self,
        metrics_dir: Optional[Union[str, Path]] = None,
        *,
        sink: Optional[MetricSink] = None,
    ) -> None:
        self.csv_path = Path(metrics_dir) / CSV_FILENAME if metrics_dir else None
        self.sink = sink
        self._csv_lock = threading.Lock()

    def _append_csv(self, row: Dict[str, Any]) -> None:
        with self._csv_lock:
            self.csv_path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.csv_path.exists()
            with self.csv_path.open("a", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
                if write_header:
                    writer.writeheader()
                writer.writerow({k: ("" if v is None else v) for k, v in row.items()})

    def record(
        self,
        component: str,
        model_or_tool: Optional[str],
        *,
        tokens_in: Optional[int] = None,
        tokens_out: Optional[int] = None,
        latency_ms: Optional[float] = None,
        cost_usd: Optional[float] = None,
        conversation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": component,
            "model_or_tool": model_or_tool or "",
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "latency_ms": round(latency_ms, 3) if latency_ms is not None else None,
            "cost_usd": cost_usd if cost_usd is not None else estimate_openai_cost(model_or_tool, tokens_in, tokens_out),
            "conversation_id": conversation_id,
        }
        if self.csv_path is not None:
            try:
                self._append_csv(row)
            except OSError as exc:
                logger.warning("metric_csv_write_failed", extra={"path": str(self.csv_path), "error": str(exc)[:300]})
        if self.sink is not None:
            try:
                self.sink.record_metric(row)
            except Exception as exc:
                logger.warning(
                    "metric_store_write_failed",
                    extra={"component": component, "error": f"{type(exc).__name__}: {exc}"[:300]},
                )
        return row

    def start_timer(self, component: str, model_or_tool: Optional[str], conversation_id: Optional[str] = None) -> "MetricTimer":
        """Measure elapsed time until `done()` and record it."""
        return MetricTimer(self, component=component, model_or_tool=model_or_tool, conversation_id=conversation_id)


@dataclass
class MetricTimer:
    recorder: MetricsRecorder
    component: str
    model_or_tool: Optional[str]
    conversation_id: Optional[str]
    _start: float = field(default_factory=time.perf_counter)

    def done(
        self,
        *,
        tokens_in: Optional[int] = None,
        tokens_out: Optional[int] = None,
        cost_usd: Optional[float] = None,
    ) -> Dict[str, Any]:
        return self.recorder.record(
            self.component,
            self.model_or_tool,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=(time.perf_counter() - self._start) * 1000,
            cost_usd=cost_usd,
            conversation_id=self.conversation_id,
        )
