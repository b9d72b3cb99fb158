from fastapi import APIRouter

from agenda.api.v1.endpoints import (
    appointments,
    scheduling,
)

api_router = APIRouter()

# Appointment booking and rescheduling endpoints
api_router.include_router(
    appointments.router, prefix="/appointments", tags=["appointments"]
)

# Availability and calendar policy endpoints
api_router.include_router(scheduling.router, prefix="/scheduling", tags=["scheduling"])
