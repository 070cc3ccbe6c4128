"""Example: account takeover scenario across two sessions.

1. User signs in from their usual laptop in New York
2. Minutes later a new device signs in from Tokyo
3. Conflict detection flags the pair as a location mismatch
4. The suspicious session is frozen and the conflict goes to manual review
"""

from datetime import datetime, timedelta, timezone

from trustgate.anomaly.schema import ResolutionStrategy
from trustgate.common.logging import get_logger
from trustgate.context.deriver import ContextDeriver
from trustgate.context.geolocation import StaticResolver
from trustgate.data.schemas import LocationInfo, SignalStatus
from trustgate.lifecycle import CreateSessionRequest, SessionLifecycleManager
from trustgate.notifications import CollectingSink, EventBus
from trustgate.store.memory import InMemorySessionStore

logger = get_logger(__name__)

LAPTOP_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
PHONE_UA = (
    "Mozilla/5.0 (Linux; Android 13; SM-S908B) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Mobile Safari/537.36"
)


def example_takeover_scenario():
    resolver = StaticResolver({
        "74.125.20.10": LocationInfo(
            ip_address="74.125.20.10", country="United States", city="New York",
            status=SignalStatus.AVAILABLE,
        ),
        "133.242.5.20": LocationInfo(
            ip_address="133.242.5.20", country="Japan", city="Tokyo",
            status=SignalStatus.AVAILABLE,
        ),
    })
    sink = CollectingSink()
    manager = SessionLifecycleManager(
        InMemorySessionStore(),
        context_deriver=ContextDeriver(resolver),
        event_bus=EventBus(sinks=[sink]),
    )

    now = datetime.now(timezone.utc)
    home = manager.create_session(
        CreateSessionRequest(user_id="user_456", ip_address="74.125.20.10", user_agent=LAPTOP_UA),
        now=now,
    )
    logger.info(f"Home session: {home.decision.value} trust={home.session.trust_level}")

    intruder = manager.create_session(
        CreateSessionRequest(user_id="user_456", ip_address="133.242.5.20", user_agent=PHONE_UA),
        now=now + timedelta(minutes=10),
    )
    logger.info(
        f"Second session: {intruder.decision.value} risk={intruder.risk.total_score} "
        f"notifications={[n.value for n in intruder.notifications]}"
    )

    for group in manager.anomaly_detector.detect_conflicts("user_456", now + timedelta(minutes=10)):
        logger.info(f"Conflict {group.conflict_type.value} ({group.severity.value}): {group.session_ids}")

    if intruder.session is not None and intruder.session.is_suspicious:
        manager.freeze_session(intruder.session.session_id, "Sign-in from Tokyo minutes after New York")

    result = manager.auto_resolve_conflicts(
        "user_456", ResolutionStrategy.REQUIRE_MANUAL, now=now + timedelta(minutes=11)
    )
    logger.info(f"Resolution: {result.message}")

    for event in sink.events:
        logger.info(f"Notification [{event.severity.value}] {event.title}: {event.message}")
    return result


if __name__ == "__main__":
    outcome = example_takeover_scenario()
    print(f"Manual review requested: {outcome.manual_review_requested}")
