from __future__ import annotations

from flask import Blueprint, Response
from prometheus_client import Counter, generate_latest

metrics_blueprint = Blueprint("metrics_bp", __name__)

CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"

PARTIES_STARTED = Counter(
    "tunesync_parties_started_total",
    "Total number of parties created.",
)
PARTY_CONFLICTS = Counter(
    "tunesync_party_conflicts_total",
    "Party starts rejected because a prospective member is already in a party.",
)
PARTIES_ENDED = Counter(
    "tunesync_parties_ended_total",
    "Total number of parties ended by their host.",
)
RECOMMENDATION_REQUESTS = Counter(
    "tunesync_recommendation_requests_total",
    "Recommendation fallback requests.",
)
RECOMMENDATION_FAILURES = Counter(
    "tunesync_recommendation_failures_total",
    "Recommendation fallback requests that produced no playable track.",
)
PLAYBACK_TRANSITIONS = Counter(
    "tunesync_playback_transitions_total",
    "Track transitions performed by playback engines.",
    ["reason"],
)


def record_party_started() -> None:
    PARTIES_STARTED.inc()


def record_party_conflict() -> None:
    PARTY_CONFLICTS.inc()


def record_party_ended() -> None:
    PARTIES_ENDED.inc()


def record_recommendation_request(success: bool) -> None:
    RECOMMENDATION_REQUESTS.inc()
    if not success:
        RECOMMENDATION_FAILURES.inc()


def record_playback_transition(reason: str) -> None:
    PLAYBACK_TRANSITIONS.labels(reason=reason).inc()


@metrics_blueprint.route("/metrics")
def metrics_endpoint() -> Response:
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
