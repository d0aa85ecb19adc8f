"""API routers."""

from pokerclub.api.checkin import router as checkin_router
from pokerclub.api.clock import router as clock_router
from pokerclub.api.results import router as results_router
from pokerclub.api.seating import router as seating_router
from pokerclub.api.tournaments import router as tournaments_router

__all__ = [
    "checkin_router",
    "clock_router",
    "results_router",
    "seating_router",
    "tournaments_router",
]
