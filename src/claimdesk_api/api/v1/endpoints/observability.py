"""Observability endpoints for the approval flow and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from claimdesk_api.api.dependencies.security import require_console_api_key
from claimdesk_api.observability.approvals import get_approval_store


router = APIRouter(prefix="/observability", tags=["Observability"])

_COMMIT_EVENTS = ("succeeded", "failed", "discarded")

_METRIC_GROUPS = (
    (
        "sessions",
        "claimdesk_approval_sessions_total",
        "Approval session lifecycle events",
        ("opened", "closed", "gate_denied"),
    ),
    (
        "previews",
        "claimdesk_approval_previews_total",
        "Claim preview requests grouped by outcome",
        ("requested", "blocked_invalid", "ready", "stale_on_arrival", "failed", "discarded"),
    ),
    ("approvals", "claimdesk_claim_approvals_total", "Claim approvals grouped by outcome", _COMMIT_EVENTS),
    ("rejections", "claimdesk_claim_rejections_total", "Claim rejections grouped by outcome", _COMMIT_EVENTS),
)


@router.get(
    "/approvals",
    dependencies=[Depends(require_console_api_key)],
    summary="Approval flow observability snapshot",
)
async def get_approval_snapshot() -> dict[str, object]:
    """Retrieve aggregated approval flow counters (requires console API key)."""
    return get_approval_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_console_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_approval_store().snapshot().as_dict()

    lines: list[str] = []
    for group, metric_name, description, known_events in _METRIC_GROUPS:
        counts: dict[str, int] = snapshot.get(group, {})  # type: ignore[assignment]
        for event in sorted(set(known_events) | set(counts)):
            lines.extend(
                _format_metric(metric_name, description, counts.get(event, 0), labels={"event": event})
            )

    body = "\n".join(lines) + "\n"
    return PlainTextResponse(body, media_type="text/plain; version=0.0.4")
