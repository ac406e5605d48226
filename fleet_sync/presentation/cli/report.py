from __future__ import annotations

from fleet_sync.application.services.orchestrator import RunSummary
from fleet_sync.application.use_cases.summarize_dataset import DatasetSummary


def format_run_summary(summary: RunSummary) -> str:
    status = "early-exit" if summary.timed_out else "completed"
    source = "cache" if summary.fleet_from_cache else "count"
    return (
        f"run {status}: fleet={summary.total_fleet_size} ({source}) available={summary.available} "
        f"budget={summary.action_budget} acted={summary.acted} observed={summary.observed} "
        f"failed={summary.failed} new_events={summary.new_events} dataset_units={summary.dataset_units}"
    )


def format_dataset_summary(summary: DatasetSummary) -> str:
    lines = [
        f"units:            {summary.units}",
        f"units w/ history: {summary.units_with_history}",
        f"events:           {summary.events}",
        f"revenue (USD):    {summary.revenue_usd:,.0f}",
        "events by precision:",
    ]
    for level, count in summary.events_by_precision.items():
        lines.append(f"  {level:<6} {count}")
    if summary.top_routes:
        lines.append("top routes:")
        for route, count in summary.top_routes:
            lines.append(f"  {route:<12} {count}")
    return "\n".join(lines)
