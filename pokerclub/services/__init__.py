"""Business logic services."""

from pokerclub.services.checkin import CheckinService, CheckInResult
from pokerclub.services.clock import ClockService
from pokerclub.services.registration import RegistrationService
from pokerclub.services.results import ResultsService
from pokerclub.services.seating import SeatingService
from pokerclub.services.tournament import TournamentService

__all__ = [
    # Seating
    "SeatingService",
    # Registration / check-in
    "RegistrationService",
    "CheckinService",
    "CheckInResult",
    # Tournament lifecycle
    "TournamentService",
    "ClockService",
    # Results
    "ResultsService",
]
