"""Blog demo endpoints: public reads, authenticated and policy-checked writes."""
from fastapi import APIRouter, Depends
from policygate.api.deps import enforce_policy
from policygate.services.policy import Decision

BLOG_RESOURCES = ("post", "author", "comment")

router = APIRouter()


def mock_public():
    return {"hello": "public"}


def mock_private(decision: Decision = Depends(enforce_policy)):
    return {"hello": "Authenticated", "permission": str(decision.matched_permission)}


for resource in BLOG_RESOURCES:
    router.add_api_route(f"/{resource}", mock_public, methods=["GET"], tags=[resource])
    router.add_api_route(f"/{resource}/{{resource_id}}", mock_public, methods=["GET"], tags=[resource])
    router.add_api_route(f"/{resource}", mock_private, methods=["POST"], tags=[resource])
    router.add_api_route(f"/{resource}/{{resource_id}}", mock_private, methods=["PUT"], tags=[resource])
    router.add_api_route(f"/{resource}/{{resource_id}}", mock_private, methods=["DELETE"], tags=[resource])
