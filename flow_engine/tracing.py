from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json
import logging
import time


class CallTrace:
    """Collects completed external calls with their durations for one request."""

    def __init__(self) -> None:
        self.entries: List[Dict[str, Any]] = []

    def record(
        self,
        service: str,
        fn: str,
        started: float,
        *,
        ok: bool = True,
        error: Optional[str] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        latency_ms = (time.monotonic() - started) * 1000
        entry: Dict[str, Any] = {
            "service": service,
            "fn": fn,
            "status": "complete" if ok else "error",
            "duration_ms": round(latency_ms, 2),
        }
        if error:
            entry["error"] = error
        entry.update(extra)
        self.entries.append(entry)
        log_call(service, fn, latency_ms, ok, error=error)
        return entry

    def summary_table(self) -> str:
        if not self.entries:
            return ""
        table = "| Service | Function | Status | Duration (ms) |\n| :--- | :--- | :--- | ---: |\n"
        for tr in self.entries:
            table += f"| {tr['service']} | {tr['fn']} | {tr['status']} | {tr['duration_ms']:.2f} |\n"
        return table


def log_call(tool: str, fn: str, latency_ms: float, ok: bool, error: Optional[str] = None) -> None:
    log_data = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "tool": tool,
        "fn": fn,
        "latency_ms": f"{latency_ms:.2f}",
        "ok": ok,
    }
    if error:
        log_data["error"] = error
    logging.info(json.dumps(log_data))


def record_call(
    trace: Optional[CallTrace],
    service: str,
    fn: str,
    started: float,
    *,
    ok: bool = True,
    error: Optional[str] = None,
    **extra: Any,
) -> None:
    if trace is not None:
        trace.record(service, fn, started, ok=ok, error=error, **extra)
    else:
        log_call(service, fn, (time.monotonic() - started) * 1000, ok, error=error)
