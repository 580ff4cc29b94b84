"""
HTTP client for the booking backend's appointment, vehicle and service APIs.
"""

import logging
from typing import Any, Collection, Dict, List, Optional, Sequence

import requests
from pendulum import DateTime

from ..domain.exceptions import AppointmentStoreError, DirectoryError
from ..domain.models import AppointmentRecord, ServiceRecord, VehicleRecord
from .records import (
    appointment_from_payload,
    is_terminal_payload,
    service_from_payload,
    vehicle_from_payload,
)

logger = logging.getLogger(__name__)


class ApiAppointmentStore:
    """
    Client for the booking backend REST API.

    Uses ``GET /appointments``, ``GET /vehicles`` and ``GET /services``;
    each answers with a JSON list or a ``{"data": [...]}`` envelope.
    """

    def __init__(
        self,
        base_url: str,
        timezone: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root, e.g. ``http://localhost:5000/api``
            timezone: Calendar time zone used to read dates
            access_token: Optional bearer token
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timezone = timezone
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"

    def _get(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{path}"

        response = self.session.get(
            url,
            headers=self.headers,
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise ValueError(f"Unexpected response shape from {url}")
        return data

    def find_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        exclude_statuses: Collection[str],
        vehicle_ids: Optional[Sequence[str]] = None,
    ) -> List[AppointmentRecord]:
        """
        Fetch appointments with a scheduled or preferred date in ``[start, end]``.

        Raises:
            AppointmentStoreError: If the API call fails or returns garbage
        """
        params: Dict[str, Any] = {
            "from": start.to_iso8601_string(),
            "to": end.to_iso8601_string(),
            "excludeStatus": sorted(exclude_statuses),
        }
        if vehicle_ids is not None:
            params["vehicleIds"] = list(vehicle_ids)

        try:
            payloads = self._get("appointments", params)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise AppointmentStoreError(f"Failed to fetch appointments: {e}") from e

        return self._parse_appointments(payloads)

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentRecord]:
        """
        Fetch one appointment by id; None when the API answers 404.

        Raises:
            AppointmentStoreError: If the API call fails or returns garbage
        """
        url = f"{self.base_url}/appointments/{appointment_id}"

        try:
            response = self.session.get(url, headers=self.headers, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise AppointmentStoreError(f"Failed to fetch appointment {appointment_id}: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]

        try:
            return appointment_from_payload(data, self.timezone)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise AppointmentStoreError(f"Could not parse appointment {appointment_id}: {e}") from e

    def _parse_appointments(self, payloads: List[Dict[str, Any]]) -> List[AppointmentRecord]:
        appointments: List[AppointmentRecord] = []

        for payload in payloads:
            try:
                appointments.append(appointment_from_payload(payload, self.timezone))
            except (KeyError, ValueError, TypeError) as e:
                # Dropping an active booking would overstate free capacity
                if not is_terminal_payload(payload):
                    raise AppointmentStoreError(
                        f"Could not parse appointment {payload.get('_id', '?')}: {e}"
                    ) from e
                logger.warning("Could not parse appointment %s: %s", payload.get("_id", "?"), e)

        return appointments

    def find_vehicles(
        self,
        *,
        ids: Sequence[str],
        owner_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[VehicleRecord]:
        params: Dict[str, Any] = {"ids": list(ids), "active": str(active_only).lower()}
        if owner_id is not None:
            params["ownerId"] = owner_id

        try:
            return [vehicle_from_payload(p) for p in self._get("vehicles", params)]
        except (requests.exceptions.RequestException, ValueError, TypeError) as e:
            raise DirectoryError(f"Failed to fetch vehicles: {e}") from e

    def find_services(
        self,
        *,
        ids: Sequence[str],
        active_only: bool = True,
    ) -> List[ServiceRecord]:
        params = {"ids": list(ids), "active": str(active_only).lower()}

        try:
            return [service_from_payload(p) for p in self._get("services", params)]
        except (requests.exceptions.RequestException, ValueError, TypeError) as e:
            raise DirectoryError(f"Failed to fetch services: {e}") from e
