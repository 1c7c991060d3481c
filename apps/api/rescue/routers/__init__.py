"""API routers."""

from rescue.routers.appointments import router as appointments_router
from rescue.routers.intakes import router as intakes_router
from rescue.routers.messages import router as messages_router
from rescue.routers.twilio import router as twilio_router

__all__ = [
    "appointments_router",
    "intakes_router",
    "messages_router",
    "twilio_router",
]
