"""Decision audit events.

Every decision is published to in-process subscribers and written to the
``policygate.audit`` logger. Nothing is persisted here; a subscriber that
wants durable storage does it itself.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from policygate.core.logging_config import audit_logger, logger
from policygate.services.policy import Decision, Resource, Subject


@dataclass(frozen=True)
class DecisionEvent:
    subject_id: str
    roles: Tuple[str, ...]
    action: str
    resource_type: str
    resource_key: Optional[str]
    allowed: bool
    reason: str
    matched_permission: Optional[str]
    policy_version: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_decision(cls, subject: Subject, action: str, resource: Resource, decision: Decision) -> "DecisionEvent":
        return cls(
            subject_id=subject.id,
            roles=tuple(sorted(subject.roles)),
            action=action,
            resource_type=resource.type,
            resource_key=resource.key,
            allowed=decision.allowed,
            reason=decision.reason.value,
            matched_permission=str(decision.matched_permission) if decision.matched_permission else None,
            policy_version=decision.policy_version,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["roles"] = list(self.roles)
        data["timestamp"] = self.timestamp.isoformat()
        return data


Subscriber = Callable[[DecisionEvent], None]


class AuditEmitter:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers = self._subscribers + [callback]

        def unsubscribe():
            self._subscribers = [s for s in self._subscribers if s is not callback]

        return unsubscribe

    def emit(self, event: DecisionEvent) -> None:
        audit_logger.info(
            f"subject={event.subject_id} action={event.action} "
            f"resource={event.resource_type}/{event.resource_key or ''} "
            f"allowed={event.allowed} reason={event.reason} policy_version={event.policy_version}"
        )
        # A failing subscriber must not turn into a failed request
        for callback in self._subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Audit subscriber {callback!r} failed")
