"""Access/Authorization API endpoints."""
from typing import List
from fastapi import APIRouter, Depends
from policygate import schemas
from policygate.api.deps import get_decision_engine
from policygate.services.decision import DecisionEngine
from policygate.services.policy import Resource, Subject

router = APIRouter()


def _evaluate(request: schemas.AuthRequest, engine: DecisionEngine) -> schemas.AuthResponse:
    subject = Subject(
        id=request.subject.id,
        roles=frozenset(request.subject.roles),
        attributes=request.subject.attributes,
    )
    key = request.resource.key
    resource = Resource(
        type=request.resource.type,
        key=str(key) if key is not None else None,
        attributes=request.resource.attributes,
    )
    emit = not request.dry_run
    if request.explain:
        explanation = engine.explain(subject, request.action, resource, emit=emit)
        return schemas.AuthResponse.from_decision(explanation.decision, explanation.candidates)
    return schemas.AuthResponse.from_decision(engine.decide(subject, request.action, resource, emit=emit))


@router.post("/access", response_model=schemas.AuthResponse)
def authorize(
    request: schemas.AuthRequest,
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Evaluate one explicit (subject, action, resource) request."""
    return _evaluate(request, engine)


@router.post("/access/batch", response_model=List[schemas.AuthResponse])
def authorize_batch(
    requests: List[schemas.AuthRequest],
    engine: DecisionEngine = Depends(get_decision_engine)
):
    """Evaluates several requests; each one sees whichever snapshot is active when it runs."""
    return [_evaluate(req, engine) for req in requests]
