"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import date
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.clock_time import parse_time
from .domain.exceptions import ConfigError
from .domain.models import (
    DEFAULT_APPOINTMENT_DURATION,
    DEFAULT_APPOINTMENT_TIME,
    BusinessCalendar,
    CancellationRules,
    LunchBreak,
    ModificationRules,
    MultiVehicleStrategy,
)


def _validate_clock(value: str) -> str:
    parse_time(value)
    return value


class HoursConfig(BaseModel):
    """Opening and closing time."""
    start: str = "09:00"
    end: str = "18:00"

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        """Reject anything that is not a 24-hour HH:MM time."""
        return _validate_clock(value)

    @model_validator(mode="after")
    def validate_hours_order(self) -> "HoursConfig":
        """Ensure the service center opens before it closes."""
        if parse_time(self.end) <= parse_time(self.start):
            raise ValueError("operating_hours.end must be later than operating_hours.start")
        return self


class LunchBreakConfig(BaseModel):
    """Daily lunch break."""
    enabled: bool = True
    start: str = "12:00"
    end: str = "13:00"

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        """Reject anything that is not a 24-hour HH:MM time."""
        return _validate_clock(value)

    @model_validator(mode="after")
    def validate_break_order(self) -> "LunchBreakConfig":
        if self.enabled and parse_time(self.end) <= parse_time(self.start):
            raise ValueError("lunch_break.end must be later than lunch_break.start")
        return self


class CancellationConfig(BaseModel):
    free_until_hours: int = Field(default=48, ge=0)
    fee_percentage: int = Field(default=50, ge=0, le=100)


class ModificationConfig(BaseModel):
    allowed_until_hours: int = Field(default=24, ge=0)
    max_modifications: int = Field(default=2, ge=0)


class CalendarConfig(BaseModel):
    """Business calendar: opening days and hours, capacity and booking window."""
    operating_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5])  # Monday to Saturday
    operating_hours: HoursConfig = Field(default_factory=HoursConfig)
    lunch_break: LunchBreakConfig = Field(default_factory=LunchBreakConfig)
    slot_duration: int = Field(default=30, gt=0)
    max_concurrent_appointments: int = Field(default=3, gt=0)
    advance_booking_days: int = Field(default=30, ge=0)
    minimum_notice_hours: int = Field(default=2, ge=0)
    blocked_dates: List[date] = Field(default_factory=list)
    multi_vehicle_strategy: MultiVehicleStrategy = MultiVehicleStrategy.SEQUENTIAL
    buffer_time: int = Field(default=0, ge=0)
    cancellation: CancellationConfig = Field(default_factory=CancellationConfig)
    modification: ModificationConfig = Field(default_factory=ModificationConfig)

    @field_validator("operating_days")
    @classmethod
    def validate_operating_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"operating_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    def to_business_calendar(self, timezone: str) -> BusinessCalendar:
        """Build the immutable domain calendar from this configuration."""
        return BusinessCalendar(
            opening_time=parse_time(self.operating_hours.start),
            closing_time=parse_time(self.operating_hours.end),
            operating_days=frozenset(self.operating_days),
            lunch_break=LunchBreak(
                enabled=self.lunch_break.enabled,
                start=parse_time(self.lunch_break.start),
                end=parse_time(self.lunch_break.end),
            ),
            slot_duration=self.slot_duration,
            max_concurrent_appointments=self.max_concurrent_appointments,
            advance_booking_days=self.advance_booking_days,
            minimum_notice_hours=self.minimum_notice_hours,
            blocked_dates=frozenset(self.blocked_dates),
            multi_vehicle_strategy=self.multi_vehicle_strategy,
            buffer_time=self.buffer_time,
            cancellation=CancellationRules(**self.cancellation.model_dump()),
            modification=ModificationRules(**self.modification.model_dump()),
            timezone=timezone,
        )


class DefaultsConfig(BaseModel):
    """Fallbacks applied to requests and to incomplete appointment records."""
    service_duration: int = Field(default=60, gt=0)
    appointment_time: str = DEFAULT_APPOINTMENT_TIME
    appointment_duration: int = Field(default=DEFAULT_APPOINTMENT_DURATION, gt=0)
    limited_slots_threshold: int = Field(default=3, ge=0)

    @field_validator("appointment_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        return _validate_clock(value)


class StoreConfig(BaseModel):
    """Where appointment, vehicle and service records come from."""
    backend: Literal["memory", "api"] = "memory"
    data_file: Optional[Path] = None
    base_url: str = ""
    timeout: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def validate_backend(self) -> "StoreConfig":
        if self.backend == "api" and not self.base_url:
            raise ValueError("store.base_url is required for the api backend")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/London"
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    serialize_bookings: bool = False
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def business_calendar(self) -> BusinessCalendar:
        return self.calendar.to_business_calendar(self.timezone)

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except ValueError as exc:
            raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc

        # Relative data files are resolved against the config file's folder
        if config.store.data_file and not config.store.data_file.is_absolute():
            config.store.data_file = config_path.parent / config.store.data_file

        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of serviceslots/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
