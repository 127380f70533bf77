from fastapi import APIRouter

from sailsmart.api.routes import auth, health, onboarding, profile, registrations, requirements, sessions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(sessions.owner_router, prefix="/owner/session", tags=["sessions"])
api_router.include_router(sessions.prospect_router, prefix="/prospect/session", tags=["sessions"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(onboarding.router, prefix="/onboarding", tags=["onboarding"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
api_router.include_router(requirements.router, prefix="/journeys", tags=["requirements"])
api_router.include_router(registrations.router, prefix="/registrations", tags=["registrations"])
