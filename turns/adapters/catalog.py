"""
Business catalog backed by the YAML application config.
"""

import threading
from typing import Dict, List, Optional, Sequence

from ..config import AppConfig
from ..domain.exceptions import NotFoundError
from ..domain.models import Business, Service, WeeklySchedule


class ConfigBusinessDirectory:
    """
    Resolves businesses, services and weekly opening hours from ``AppConfig``.

    The config is converted to domain objects once. Schedule replacements are
    kept in memory only; the YAML file is never rewritten.
    """

    def __init__(self, config: AppConfig):
        self._lock = threading.Lock()
        self._businesses: Dict[str, Business] = {}
        self._services: Dict[str, Service] = {}
        self._schedules: Dict[str, List[WeeklySchedule]] = {}

        for business_config in config.businesses:
            business = business_config.to_domain(config.timezone)
            self._businesses[business.id] = business
            self._schedules[business.id] = [
                schedule.to_domain() for schedule in business_config.schedules
            ]
            for service_config in business_config.services:
                service = service_config.to_domain(business.id)
                self._services[service.id] = service

    def list_businesses(self) -> List[Business]:
        return list(self._businesses.values())

    def list_services(self, business_id: str) -> List[Service]:
        business = self.get_business(business_id)
        return [s for s in self._services.values() if s.business_id == business.id]

    def get_business(self, business_id: str) -> Business:
        business = self._businesses.get(business_id)
        if business is None or not business.is_active:
            raise NotFoundError(f"Business not found: {business_id}")
        return business

    def get_service(self, service_id: str) -> Service:
        service = self._services.get(service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {service_id}")
        return service

    def get_schedule(self, business_id: str, day_of_week: int) -> Optional[WeeklySchedule]:
        for schedule in self.list_schedules(business_id):
            if schedule.day_of_week == day_of_week:
                return schedule
        return None

    def list_schedules(self, business_id: str) -> List[WeeklySchedule]:
        business = self.get_business(business_id)
        with self._lock:
            return list(self._schedules.get(business.id, []))

    def replace_schedules(self, business_id: str, schedules: Sequence[WeeklySchedule]) -> None:
        business = self.get_business(business_id)
        with self._lock:
            self._schedules[business.id] = list(schedules)
