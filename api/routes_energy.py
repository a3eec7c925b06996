"""Energy report and suggestion routes for the HomeSim Management API."""

from typing import Literal

from fastapi import APIRouter

from .models import EnergyReport, Suggestion

router = APIRouter(prefix="/api/v1", tags=["energy"])


@router.get("/energy", response_model=EnergyReport)
def energy_report(period: Literal["today", "yesterday", "week", "month"] = "today"):
    """Energy totals with per-device cost and share of the total."""
    home = router.app.state.home
    report = home.analytics.detailed_energy_report(period)
    return {**report, "period": period}


@router.get("/suggestions", response_model=list[Suggestion])
def suggestions():
    home = router.app.state.home
    return home.analytics.suggestions()
