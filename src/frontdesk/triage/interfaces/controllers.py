"""
Triage Controllers (API Routes)
================================

FastAPI routes for keyword classification.

Controllers delegate to application services.
"""

from fastapi import APIRouter, Depends, Request

from frontdesk.triage.application import (
    ClassificationService,
    ClassifyRequest,
    ClassificationResponse,
)

router = APIRouter(prefix="/triage", tags=["Ticket Triage"])


CLASSIFY_RESPONSE_EXAMPLE = {
    "category": "COMPLAINT",
    "department": "MANAGEMENT",
    "priority": "URGENT"
}


# ========== Dependencies ==========

def get_classification_service(request: Request) -> ClassificationService:
    """Classification service bound to the live SLA configuration."""
    return ClassificationService(request.app.state.sla_config_manager)


# ========== Route Handlers ==========

@router.post(
    "/classify",
    response_model=ClassificationResponse,
    summary="Classify conversation text",
    description="""
    Run the ordered keyword rule table over a subject and message text.

    The first rule with a keyword contained in the lower-cased text wins.
    Text that matches no rule is classified as `OTHER` / `FRONT_DESK` / `MEDIUM`.
    """,
    responses={
        200: {
            "description": "Classification result",
            "content": {"application/json": {"example": CLASSIFY_RESPONSE_EXAMPLE}}
        }
    }
)
async def classify(
    payload: ClassifyRequest,
    service: ClassificationService = Depends(get_classification_service)
):
    result = service.classify(payload.subject, payload.message_text)
    return ClassificationResponse(**result.to_dict())


# Export router for inclusion in main app
triage_router = router
