"""
Log Viewer Utilities for toolbatch.

Query, filter and summarize JSONL log entries.
Used by the `toolbatch logs` CLI command.
"""

import json
import re
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .config import get_config

LOG_TYPES = ("jobs", "batches", "permissions")


def parse_since(since: str) -> datetime:
    """
    Parse a 'since' time string into a datetime.

    Supports:
        - ISO format: "2026-01-11T10:00:00"
        - Relative: "1h", "30m", "2d", "1w"

    Raises:
        ValueError: If the string matches neither format
    """
    try:
        return datetime.fromisoformat(since)
    except ValueError:
        pass

    match = re.match(r"^(\d+)([mhdw])$", since.lower())
    if match:
        value = int(match.group(1))
        delta_map = {
            "m": timedelta(minutes=value),
            "h": timedelta(hours=value),
            "d": timedelta(days=value),
            "w": timedelta(weeks=value),
        }
        return datetime.now() - delta_map[match.group(2)]

    raise ValueError(f"Invalid time format: {since}. Use ISO format or relative (1h, 30m, 2d)")


def read_jsonl(filepath: Path, since: datetime | None = None) -> Iterator[dict[str, Any]]:
    """
    Read entries from a JSONL file, skipping blank and malformed lines.

    Args:
        filepath: Path to JSONL file
        since: Only return entries at or after this time
    """
    if not filepath.exists():
        return

    with open(filepath, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue

            if since:
                try:
                    if datetime.fromisoformat(entry.get("timestamp", "")) < since:
                        continue
                except (ValueError, TypeError):
                    continue

            yield entry


def _log_files(log_type: str) -> list[tuple[str, Path]]:
    config = get_config()
    paths = {
        "jobs": config.job_log_path,
        "batches": config.batch_log_path,
        "permissions": config.permission_log_path,
    }
    if log_type == "all":
        return list(paths.items())
    if log_type not in paths:
        raise ValueError(f"Unknown log type: {log_type}. Use one of: all, {', '.join(LOG_TYPES)}")
    return [(log_type, paths[log_type])]


def query_logs(
    log_type: str = "all",
    since: str | None = None,
    batch_id: str | None = None,
    event: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """
    Query log entries with filters.

    Args:
        log_type: "jobs", "batches", "permissions", or "all"
        since: Time filter (ISO or relative like "1h")
        batch_id: Only entries from this batch
        event: Only entries with this event name
        limit: Max entries to return, newest first

    Returns:
        List of matching log entries, each tagged with its "_source"
    """
    since_dt = parse_since(since) if since else None
    results: list[dict[str, Any]] = []

    for source, filepath in _log_files(log_type):
        for entry in read_jsonl(filepath, since=since_dt):
            entry["_source"] = source
            if batch_id and entry.get("batch_id") != batch_id:
                continue
            if event and entry.get("event") != event:
                continue
            results.append(entry)

    results.sort(key=lambda x: x.get("timestamp", ""), reverse=True)
    return results[:limit]


def percentile(values: list[float], p: float) -> float:
    """Calculate the p-th percentile with linear interpolation."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = (len(sorted_vals) - 1) * p / 100
    f = int(k)
    c = f + 1 if f + 1 < len(sorted_vals) else f
    return sorted_vals[f] + (k - f) * (sorted_vals[c] - sorted_vals[f])


def calculate_stats(entries: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarize job, batch and permission entries."""
    jobs = [e for e in entries if e.get("_source") == "jobs"]
    batches = [e for e in entries if e.get("_source") == "batches"]
    permissions = [e for e in entries if e.get("_source") == "permissions"]

    completed = [e for e in jobs if e.get("event") == "completed"]
    failed = [e for e in jobs if e.get("event") == "failed"]
    durations = [e.get("duration_ms", 0) for e in completed + failed if e.get("duration_ms")]

    tools: dict[str, int] = {}
    for e in jobs:
        if e.get("event") == "dispatched":
            name = e.get("tool") or "unknown"
            tools[name] = tools.get(name, 0) + 1

    decisions: dict[str, int] = {}
    for e in permissions:
        label = f"{e.get('decision', '?')}/{e.get('source', '?')}"
        decisions[label] = decisions.get(label, 0) + 1

    return {
        "batches": sum(1 for e in batches if e.get("event") == "started"),
        "batches_aborted": sum(1 for e in batches if e.get("event") == "aborted"),
        "jobs_completed": len(completed),
        "jobs_failed": len(failed),
        "jobs_ignored": sum(1 for e in jobs if e.get("event") == "ignored"),
        "avg_duration_ms": int(sum(durations) / len(durations)) if durations else 0,
        "p50_duration_ms": int(percentile(durations, 50)),
        "p95_duration_ms": int(percentile(durations, 95)),
        "tools": tools,
        "decisions": decisions,
        "errors": [e["error"][:100] for e in failed if e.get("error")][:10],
    }


def format_entry_line(entry: dict[str, Any]) -> str:
    """Format a log entry as a single display line."""
    source = entry.get("_source", "?")
    ts = entry.get("timestamp", "")[:19]

    if source == "jobs":
        event = entry.get("event", "?")
        key = str(entry.get("key", ""))
        tool = entry.get("tool", "")
        line = f"[{ts}] JOB   {entry.get('batch_id', ''):8s} {key:12s} {event:10s} {tool}"
        if entry.get("error"):
            line += f"  {entry['error'][:60]}"
        return line

    if source == "batches":
        event = entry.get("event", "?")
        size = entry.get("size", 0)
        return f"[{ts}] BATCH {entry.get('batch_id', ''):8s} {event:10s} {entry.get('mode', '')} size={size}"

    if source == "permissions":
        return (
            f"[{ts}] PERM  {entry.get('tool', ''):12s} {entry.get('decision', '?'):6s} "
            f"{entry.get('source', '')}"
        )

    return f"[{ts}] {source.upper()} {json.dumps(entry)[:60]}..."
