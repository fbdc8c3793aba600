"""
Pydantic models for business settings.

Every optional field has an explicit default so the availability calculator
never has to guess at the shape of a settings document.
"""

import hashlib
import json
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from smartbooking.utils.time_utils import WEEKDAY_NAMES, normalize_time


def _normalize_optional_time(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    return normalize_time(value)


class WorkingHours(BaseModel):
    """Default opening hours used when a day has no explicit hours."""
    start: str = Field("10:00", description="Default opening time, HH:MM")
    end: str = Field("20:00", description="Default closing time, HH:MM")

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_time(value)


class DayConfig(BaseModel):
    """Opening configuration for one weekday."""
    open: bool = Field(True, description="Whether the business takes bookings on this day")
    start: Optional[str] = Field(None, description="Opening time; falls back to working hours")
    end: Optional[str] = Field(None, description="Closing time; falls back to working hours")

    @field_validator("start", "end", mode="before")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_optional_time(value)


class ServiceAvailability(BaseModel):
    """Per-service override layered on top of the day's hours."""
    all_day: bool = Field(False, description="Service follows the day's hours")
    start: Optional[str] = Field(None, description="Service-specific start, HH:MM")
    end: Optional[str] = Field(None, description="Service-specific end, HH:MM")

    @field_validator("start", "end", mode="before")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_optional_time(value)

    @property
    def overrides_hours(self) -> bool:
        return not self.all_day and self.start is not None and self.end is not None


def _default_days_open() -> Dict[str, DayConfig]:
    days = {name: DayConfig(open=True, start="10:00", end="20:00") for name in WEEKDAY_NAMES}
    days["friday"] = DayConfig(open=False, start="10:00", end="20:00")
    return days


class BusinessSettings(BaseModel):
    """Business hours configuration used for slot calculation and booking validation."""
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    days_open: Dict[str, DayConfig] = Field(default_factory=_default_days_open)
    appointment_buffer: int = Field(15, ge=0, description="Minutes kept free before closing")
    service_availabilities: Dict[str, ServiceAvailability] = Field(default_factory=dict)
    business_name: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("days_open", mode="before")
    @classmethod
    def _lowercase_days(cls, value):
        if isinstance(value, dict):
            return {str(day).lower(): config for day, config in value.items()}
        return value

    @model_validator(mode="after")
    def _fill_missing_days(self) -> "BusinessSettings":
        unknown = set(self.days_open) - set(WEEKDAY_NAMES)
        if unknown:
            raise ValueError(f"Unknown weekday names in days_open: {sorted(unknown)}")
        for name in WEEKDAY_NAMES:
            self.days_open.setdefault(name, DayConfig())
        return self

    def day_config(self, weekday: str) -> DayConfig:
        return self.days_open[weekday]

    def fingerprint(self) -> str:
        """Stable hash of the settings, used as a slot cache key."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()

    def merged_with(self, changes: dict) -> "BusinessSettings":
        """
        Apply a partial update.

        days_open and service_availabilities are merged per key; every other
        field is replaced.
        """
        data = self.model_dump(mode="json")
        for key, value in changes.items():
            if key in ("days_open", "service_availabilities") and isinstance(value, dict):
                merged = dict(data.get(key) or {})
                for sub_key, sub_value in value.items():
                    sub_key = sub_key.lower() if key == "days_open" else sub_key
                    if isinstance(sub_value, BaseModel):
                        sub_value = sub_value.model_dump(mode="json")
                    merged[sub_key] = {**merged.get(sub_key, {}), **sub_value}
                data[key] = merged
            elif isinstance(value, BaseModel):
                data[key] = value.model_dump(mode="json")
            else:
                data[key] = value
        return BusinessSettings.model_validate(data)
