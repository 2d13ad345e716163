"""Operator metrics: one JSON line per pipeline outcome, LLM call or job run."""

from __future__ import annotations

import json
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from wa_operator.utils.helpers import ensure_dir, utc_now

PIPELINE = "pipeline"
LLM_CALL = "llm_call"
JOB_RUN = "job_run"


def _event_time(event: dict[str, Any]) -> datetime | None:
    stamp = str(event.get("ts") or "").strip()
    if not stamp:
        return None
    try:
        moment = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _clip(value: str | None, limit: int | None = None) -> str:
    text = (value or "").strip()
    return text[:limit] if limit else text


def _timing(events: list[dict[str, Any]]) -> dict[str, float]:
    """Success percentage and nearest-rank p95 latency of `events`."""
    if not events:
        return {"success_rate": 0.0, "latency_p95_ms": 0.0}
    ok = sum(1 for e in events if e.get("success"))
    latencies = sorted(float(e.get("latency_ms") or 0.0) for e in events)
    p95 = latencies[int((len(latencies) - 1) * 0.95)]
    return {
        "success_rate": round(ok * 100.0 / len(events), 2),
        "latency_p95_ms": round(p95, 2),
    }


class MetricsStore:
    """JSONL event log with windowed aggregation and retention pruning."""

    def __init__(self, events_path: Path):
        self.events_path = events_path
        ensure_dir(events_path.parent)

    def _write(self, kind: str, **fields: Any) -> bool:
        event = {"type": kind, "ts": utc_now().isoformat(), **fields}
        try:
            with self.events_path.open("a", encoding="utf-8") as out:
                out.write(json.dumps(event, ensure_ascii=False) + "\n")
        except OSError:
            return False
        return True

    def record_pipeline(self, *, contact_id: str, outcome: str, reason: str = "") -> bool:
        """Record how one inbound message left the router (replied, dropped, fallback)."""
        return self._write(
            PIPELINE,
            contact_id=_clip(contact_id),
            outcome=_clip(outcome),
            reason=_clip(reason, 200),
        )

    def record_llm_call(
        self,
        *,
        model: str,
        success: bool,
        latency_ms: float,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        error: str = "",
    ) -> bool:
        return self._write(
            LLM_CALL,
            model=_clip(model),
            success=bool(success),
            latency_ms=round(float(latency_ms), 2),
            prompt_tokens=int(prompt_tokens),
            completion_tokens=int(completion_tokens),
            error=_clip(error, 500),
        )

    def record_job_run(self, *, name: str, success: bool, latency_ms: float, error: str = "") -> bool:
        return self._write(
            JOB_RUN,
            name=_clip(name),
            success=bool(success),
            latency_ms=round(float(latency_ms), 2),
            error=_clip(error, 500),
        )

    def _read(self, since: datetime | None = None) -> list[dict[str, Any]]:
        """Parse the log, skipping corrupt lines and (with `since`) older events."""
        try:
            lines = self.events_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return []
        events: list[dict[str, Any]] = []
        for line in filter(None, (raw.strip() for raw in lines)):
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            if since is not None:
                moment = _event_time(event)
                if moment is None or moment < since:
                    continue
            events.append(event)
        return events

    def snapshot(self, hours: int = 24) -> dict[str, Any]:
        """Aggregate the last `hours` of events."""
        window_hours = max(1, int(hours))
        events = self._read(since=utc_now() - timedelta(hours=window_hours))

        by_kind: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for event in events:
            by_kind[str(event.get("type", ""))].append(event)
        pipeline, llm, jobs = by_kind[PIPELINE], by_kind[LLM_CALL], by_kind[JOB_RUN]

        drops = Counter(e.get("reason") for e in pipeline if e.get("outcome") == "dropped" and e.get("reason"))

        return {
            "generated_at": utc_now().isoformat(),
            "window_hours": window_hours,
            "events_total": len(events),
            "pipeline": {
                "total": len(pipeline),
                "outcomes": dict(Counter(str(e.get("outcome", "")) for e in pipeline)),
                "top_drop_reasons": [{"reason": r, "count": n} for r, n in drops.most_common(5)],
            },
            "llm": {
                "calls": len(llm),
                **_timing(llm),
                "prompt_tokens": sum(int(e.get("prompt_tokens") or 0) for e in llm),
                "completion_tokens": sum(int(e.get("completion_tokens") or 0) for e in llm),
            },
            "jobs": {
                "runs": len(jobs),
                **_timing(jobs),
                "failures": dict(Counter(str(e.get("name", "")) for e in jobs if not e.get("success"))),
            },
        }

    def prune(self, keep_hours: int = 24 * 7) -> int:
        """Rewrite the log without events older than `keep_hours`; return how many were dropped."""
        total = len(self._read())
        kept = self._read(since=utc_now() - timedelta(hours=max(1, int(keep_hours))))
        if total - len(kept) <= 0:
            return 0
        staging = self.events_path.with_suffix(".tmp")
        try:
            staging.write_text("".join(json.dumps(e, ensure_ascii=False) + "\n" for e in kept), encoding="utf-8")
            staging.replace(self.events_path)
        except OSError:
            return 0
        return total - len(kept)
