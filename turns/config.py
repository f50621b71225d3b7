"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ScheduleValidationError
from .domain.models import Business, Service, WeeklySchedule, parse_clock_time
from .services.schedules import MIN_OPENING_MINUTES

DEFAULT_TIMEZONE = "America/Argentina/Buenos_Aires"


def _validate_timezone(value: str) -> str:
    try:
        pendulum.timezone(value)
    except (ValueError, KeyError) as exc:
        raise ValueError(f"Unknown timezone: {value}") from exc
    return value


class ScheduleConfig(BaseModel):
    """Opening hours for one weekday (0=Sunday, 6=Saturday)."""
    day_of_week: int
    start_time: str  # "09:00"
    end_time: str  # "18:00"
    is_active: bool = True

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if value not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {value}")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        """Ensure times use the HH:MM format."""
        try:
            parse_clock_time(value)
        except ScheduleValidationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "ScheduleConfig":
        """Ensure the business opens before it closes, for at least an hour."""
        try:
            schedule = self.to_domain()
        except ScheduleValidationError as exc:
            raise ValueError(str(exc)) from exc
        if schedule.duration_minutes() < MIN_OPENING_MINUTES:
            raise ValueError(
                f"Opening hours must span at least {MIN_OPENING_MINUTES} minutes"
            )
        return self

    def to_domain(self) -> WeeklySchedule:
        return WeeklySchedule.from_strings(
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            is_active=self.is_active,
        )


class ServiceConfig(BaseModel):
    """Service offered by a business."""
    id: str
    name: str
    duration_minutes: int
    price: Optional[float] = None
    is_active: bool = True

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    def to_domain(self, business_id: str) -> Service:
        return Service(
            id=self.id,
            business_id=business_id,
            name=self.name,
            duration_minutes=self.duration_minutes,
            is_active=self.is_active,
            price=self.price,
        )


class BusinessConfig(BaseModel):
    """Business configuration with its services and weekly opening hours."""
    id: str
    name: str
    timezone: Optional[str] = None  # Falls back to AppConfig.timezone
    is_active: bool = True
    services: List[ServiceConfig] = Field(default_factory=list)
    schedules: List[ScheduleConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_timezone(value)

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service ids are unique within the business."""
        seen: set[str] = set()
        for service in value:
            if service.id in seen:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen.add(service.id)
        return value

    @field_validator("schedules")
    @classmethod
    def validate_schedules(cls, value: List[ScheduleConfig]) -> List[ScheduleConfig]:
        """Only one schedule row per weekday is allowed."""
        seen: set[int] = set()
        for schedule in value:
            if schedule.day_of_week in seen:
                raise ValueError(
                    f"Duplicate schedule for day_of_week {schedule.day_of_week}"
                )
            seen.add(schedule.day_of_week)
        return value

    def to_domain(self, default_timezone: str) -> Business:
        return Business(
            id=self.id,
            name=self.name,
            timezone=self.timezone or default_timezone,
            is_active=self.is_active,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    data_file: str = "appointments.json"
    businesses: List[BusinessConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _validate_timezone(value)

    @field_validator("businesses")
    @classmethod
    def validate_businesses(cls, value: List[BusinessConfig]) -> List[BusinessConfig]:
        """Ensure business ids and service ids are unique."""
        seen_businesses: set[str] = set()
        seen_services: set[str] = set()
        for business in value:
            if business.id in seen_businesses:
                raise ValueError(f"Duplicate business id detected: {business.id}")
            seen_businesses.add(business.id)
            for service in business.services:
                if service.id in seen_services:
                    raise ValueError(f"Duplicate service id detected: {service.id}")
                seen_services.add(service.id)
        return value

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
            ValueError: If config is invalid
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
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def resolve_data_file(self, config_path: Path) -> Path:
        """Appointment store path; relative paths are taken from the config file's folder."""
        data_path = Path(self.data_file).expanduser()
        if data_path.is_absolute():
            return data_path
        return config_path.parent / data_path

    def find_business(self, business_id: str) -> Optional[BusinessConfig]:
        """Find a business by id."""
        for business in self.businesses:
            if business.id == business_id:
                return business
        return None


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of turns/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
