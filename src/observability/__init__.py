# noqa: D104 - package initialization
from .logging import configure_structured_logging  # noqa: F401
from .metrics import (  # noqa: F401
    metrics_blueprint,
    record_party_conflict,
    record_party_ended,
    record_party_started,
    record_playback_transition,
    record_recommendation_request,
)
from .tracing import init_tracing, span  # noqa: F401
