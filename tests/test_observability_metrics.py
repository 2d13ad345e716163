import json
from datetime import timedelta
from pathlib import Path

from wa_operator.observability.metrics import MetricsStore
from wa_operator.utils.helpers import utc_now


def test_snapshot_aggregates_pipeline_llm_and_jobs(tmp_path: Path):
    store = MetricsStore(tmp_path / "metrics" / "events.jsonl")
    store.record_pipeline(contact_id="a", outcome="replied")
    store.record_pipeline(contact_id="a", outcome="dropped", reason="rate_limited")
    store.record_pipeline(contact_id="b", outcome="dropped", reason="rate_limited")
    store.record_pipeline(contact_id="b", outcome="dropped", reason="owner_active")
    store.record_llm_call(model="groq/x", success=True, latency_ms=120, prompt_tokens=10, completion_tokens=4)
    store.record_llm_call(model="groq/x", success=False, latency_ms=900, error="429")
    store.record_job_run(name="snapshot", success=True, latency_ms=3)
    store.record_job_run(name="compression", success=False, latency_ms=50, error="boom")

    snap = store.snapshot(hours=1)

    assert snap["pipeline"]["total"] == 4
    assert snap["pipeline"]["outcomes"] == {"replied": 1, "dropped": 3}
    assert snap["pipeline"]["top_drop_reasons"][0] == {"reason": "rate_limited", "count": 2}
    assert snap["llm"]["calls"] == 2
    assert snap["llm"]["success_rate"] == 50.0
    assert snap["llm"]["prompt_tokens"] == 10
    assert snap["jobs"]["failures"] == {"compression": 1}


def test_snapshot_skips_corrupt_and_old_lines(tmp_path: Path):
    path = tmp_path / "events.jsonl"
    store = MetricsStore(path)
    old = (utc_now() - timedelta(hours=48)).isoformat()
    with path.open("w", encoding="utf-8") as handle:
        handle.write(json.dumps({"type": "pipeline", "outcome": "replied", "ts": old}) + "\n")
        handle.write("{broken\n")
        handle.write("[1, 2]\n")
    store.record_pipeline(contact_id="a", outcome="replied")

    assert store.snapshot(hours=24)["pipeline"]["total"] == 1
    assert store.prune(keep_hours=24) == 1
    assert store.prune(keep_hours=24) == 0
    assert len(path.read_text(encoding="utf-8").splitlines()) == 1
