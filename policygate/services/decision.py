"""Decision engine: first-match-allow, default-deny evaluation over the active snapshot."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from policygate.services.attributes import AttributeResolver
from policygate.services.audit import AuditEmitter, DecisionEvent
from policygate.services.conditions import evaluate
from policygate.services.policy import (
    RESOURCE_KEY_ATTRIBUTE,
    SUBJECT_ID_ATTRIBUTE,
    Decision,
    DecisionReason,
    Permission,
    PolicySnapshot,
    Resource,
    Subject,
)
from policygate.services.policy_store import PolicyStore


@dataclass(frozen=True)
class Explanation:
    decision: Decision
    # Every permission that matched role, action and resource type, with its condition result
    candidates: Tuple[Tuple[Permission, bool], ...]


class DecisionEngine:
    """Evaluates ``(subject, action, resource)`` against the store's current snapshot.

    The engine trusts the roles carried by the Subject; it keeps no
    subject-to-role mapping of its own. ``decide`` performs no I/O and
    mutates nothing, so concurrent calls need no coordination.
    """

    def __init__(
        self,
        store: PolicyStore,
        resolver: Optional[AttributeResolver] = None,
        audit: Optional[AuditEmitter] = None,
    ):
        self.store = store
        # Evaluation always resolves permissively; strictness is the caller's call
        self.resolver = resolver or AttributeResolver()
        self.audit = audit

    def decide(self, subject: Subject, action: str, resource: Resource, emit: bool = True) -> Decision:
        snapshot = self.store.current_snapshot()
        decision, _ = self._evaluate(snapshot, subject, action, resource, collect=False)
        if emit:
            self._emit(subject, action, resource, decision)
        return decision

    def explain(self, subject: Subject, action: str, resource: Resource, emit: bool = True) -> Explanation:
        """Like ``decide`` but also reports every candidate permission examined."""
        snapshot = self.store.current_snapshot()
        decision, candidates = self._evaluate(snapshot, subject, action, resource, collect=True)
        if emit:
            self._emit(subject, action, resource, decision)
        return Explanation(decision, tuple(candidates))

    def _evaluate(
        self,
        snapshot: PolicySnapshot,
        subject: Subject,
        action: str,
        resource: Resource,
        collect: bool,
    ) -> Tuple[Decision, List[Tuple[Permission, bool]]]:
        candidates: List[Tuple[Permission, bool]] = []
        permissions = snapshot.permissions_for(subject.roles, action, resource.type)
        if not permissions:
            return Decision.deny(policy_version=snapshot.version), candidates

        subject_attrs, resource_attrs = self._attributes(snapshot, subject, resource)
        matched = None
        for permission in permissions:
            result = evaluate(permission.condition, subject_attrs, resource_attrs)
            if collect:
                candidates.append((permission, result))
            if result and matched is None:
                matched = permission
                if not collect:
                    break

        if matched is None:
            return Decision.deny(policy_version=snapshot.version), candidates
        return (
            Decision(
                allowed=True,
                reason=DecisionReason.MATCHED,
                matched_permission=matched,
                policy_version=snapshot.version,
            ),
            candidates,
        )

    def _attributes(self, snapshot: PolicySnapshot, subject: Subject, resource: Resource):
        subject_attrs: Dict[str, Any] = self.resolver.resolve_subject(
            subject.attributes, snapshot.subject_attributes, strict=False
        )
        subject_attrs[SUBJECT_ID_ATTRIBUTE] = subject.id

        resource_attrs: Dict[str, Any] = self.resolver.resolve(
            resource.attributes, snapshot.resource_types[resource.type], strict=False
        )
        if resource.key is not None:
            resource_attrs[RESOURCE_KEY_ATTRIBUTE] = str(resource.key)
        return subject_attrs, resource_attrs

    def _emit(self, subject: Subject, action: str, resource: Resource, decision: Decision) -> None:
        if self.audit is None:
            return
        self.audit.emit(DecisionEvent.from_decision(subject, action, resource, decision))
