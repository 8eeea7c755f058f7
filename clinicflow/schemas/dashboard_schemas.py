from datetime import date
from decimal import Decimal
from typing import Dict
from pydantic import BaseModel, Field


class DashboardStatsSchema(BaseModel):
    """Front-desk and doctor dashboard counters for one day."""

    day: date
    total_patients: int = Field(description="All registered patients")
    patients_by_status: Dict[str, int] = Field(description="Patient count per pipeline status")
    bills_today: int
    paid_bills_today: int
    pending_bills_today: int
    revenue_today: Decimal = Field(description="Sum of paid bill totals created today")
