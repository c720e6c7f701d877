"""HTTP enforcement: turns a request into a decision and fails closed on any fault."""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from policygate.core.exceptions import UnknownAttribute
from policygate.core.logging_config import logger
from policygate.services.decision import DecisionEngine
from policygate.services.policy import Decision, DecisionReason, Resource, Subject

# Maps HTTP verbs onto CRUD-style policy actions
CRUD_ACTION_MAP = {
    "get": "read",
    "head": "read",
    "post": "create",
    "put": "update",
    "patch": "update",
    "delete": "delete",
}


@dataclass(frozen=True)
class RequestTarget:
    action: str
    resource_type: str
    key: Optional[str] = None


def extract_target(
    method: str,
    path: str,
    prefix: str = "",
    action_map: Optional[Mapping[str, str]] = None,
) -> RequestTarget:
    """``DELETE /post/7`` -> action ``delete``, type ``post``, key ``7``."""
    action = method.lower()
    if action_map:
        action = action_map.get(action, action)

    if prefix and (path == prefix or path.startswith(prefix + "/")):
        path = path[len(prefix):]
    segments = path.strip("/").split("/")
    resource_type = segments[0] if segments else ""
    key = segments[1] if len(segments) > 1 and segments[1] else None
    return RequestTarget(action, resource_type, key)


class PolicyEnforcer:
    """Decides whether an authenticated request may reach its handler.

    ``check`` never raises: a fault anywhere in resolution or evaluation
    becomes a deny.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        strict: bool = False,
        prefix: str = "",
        action_map: Optional[Mapping[str, str]] = None,
    ):
        self.engine = engine
        self.strict = strict
        self.prefix = prefix.rstrip("/")
        self.action_map = action_map

    def check(self, subject: Subject, method: str, path: str, body: Any = None) -> Decision:
        target = extract_target(method, path, self.prefix, self.action_map)
        attributes = body if isinstance(body, Mapping) else {}
        resource = Resource(type=target.resource_type, key=target.key, attributes=attributes)
        snapshot = self.engine.store.current_snapshot()

        try:
            if self.strict:
                self._check_strict(snapshot, resource)
            return self.engine.decide(subject, target.action, resource)
        except UnknownAttribute as e:
            logger.warning(f"Denied {subject.id} {method} {path}: {e}")
            return Decision.deny(DecisionReason.INVALID_REQUEST, snapshot.version)
        except Exception:
            logger.exception(f"Decision failed for {subject.id} {method} {path}; denying")
            return Decision.deny(DecisionReason.ENGINE_ERROR, snapshot.version)

    def _check_strict(self, snapshot, resource: Resource) -> None:
        # Only the request body is checked; subject attributes come from the token issuer
        resource_type = snapshot.resource_types.get(resource.type)
        if resource_type is not None:
            self.engine.resolver.resolve(resource.attributes, resource_type, strict=True)
