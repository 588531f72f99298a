from fastapi import APIRouter

from sqlrest.api.endpoints import description, resources
from sqlrest.core.config import settings

api_router = APIRouter(prefix=settings.API_PREFIX)

# The catch-all resource route has to come last
api_router.include_router(description.router)
api_router.include_router(resources.router)
