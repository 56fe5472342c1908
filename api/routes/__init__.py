"""API routers."""

from fastapi import APIRouter

from api.routes import leads, companies, scoring, outreach, pipeline, search, evals, system


router = APIRouter()
router.include_router(system.router)
router.include_router(leads.router)
router.include_router(companies.router)
router.include_router(scoring.router)
router.include_router(outreach.router)
router.include_router(pipeline.router)
router.include_router(search.router)
router.include_router(evals.router)

__all__ = ["router"]
