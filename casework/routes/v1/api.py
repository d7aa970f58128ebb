from fastapi import APIRouter

from casework.cases.router import router as cases_router
from casework.evidence.router import router as evidence_router
from casework.field_verification.router import router as field_verification_router
from casework.suggestions.router import router as suggestions_router
from casework.proposals.router import router as proposals_router
from casework.verification_queue.router import router as verification_queue_router

api_router = APIRouter()

api_router.include_router(cases_router)
api_router.include_router(field_verification_router)
api_router.include_router(evidence_router)
api_router.include_router(suggestions_router)
api_router.include_router(proposals_router)
api_router.include_router(verification_queue_router)
