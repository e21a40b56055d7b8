from fastapi import APIRouter
from teleflow.api.v2 import segments, campaigns

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
