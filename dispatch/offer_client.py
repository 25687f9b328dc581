#Purpose: The ride-dispatcher HTTP "adapter/client".
#Sole responsibility: deliver (or withdraw) one offer to one driver over HTTP and
#return a normalized OfferReply.
#Encapsulates endpoint-specific details:
#URL construction (/functions/v1/ride-dispatcher)
#payload shape (action / driverId / rideRequestId)
#timeouts and error handling
#It should not contain dispatch rules or scoring.

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Mapping, Optional

import requests
from dotenv import load_dotenv

from .collaborators import OfferReply, OfferTransportError, TransportTimeout

# Read the dispatcher base URL from environment
# Example in .env:
# DISPATCH_BASE_URL=https://project.functions.example.org
load_dotenv()
DISPATCH_BASE_URL = os.getenv("DISPATCH_BASE_URL")
DISPATCH_API_KEY = os.getenv("DISPATCH_API_KEY")

logger = logging.getLogger(__name__)


class HttpOfferTransport:
    """
    OfferTransport over the ride-dispatcher function.

    The endpoint applies the atomic "first accept wins" update, so two dispatch
    cycles offering the same driver cannot both be accepted.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 12.0,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or DISPATCH_BASE_URL or "").rstrip("/")
        # seconds; stays under DispatchPolicy.offer_timeout_seconds so the
        # request has ended before the cycle stops waiting for it
        self.timeout = timeout
        self.api_key = api_key or DISPATCH_API_KEY
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("Dispatch base URL not set. Please set DISPATCH_BASE_URL in the .env file.")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/functions/v1/ride-dispatcher"

    def build_payload(self, driver_id: str, request_summary: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "action": "assign_driver",
            "driverId": driver_id,
            "rideRequestId": request_summary.get("request_id"),
            "coordinates": request_summary.get("pickup"),
            "summary": dict(request_summary),
        }

    def send_offer(self, driver_id: str, request_summary: Mapping[str, Any]) -> OfferReply:
        """
        POST the offer and block until the driver answers.

        Returns:
            OfferReply(accepted=True) only for a 2xx answer whose body has no
            "error" and does not say accepted=false.
        Raises:
            TransportTimeout when the endpoint does not answer in time.
            OfferTransportError when the endpoint cannot be reached.
        """
        response = self._post(self.build_payload(driver_id, request_summary), f"offer to {driver_id}")

        if not response.ok:
            logger.warning("ride-dispatcher answered %s for driver %s", response.status_code, driver_id)
            return OfferReply(accepted=False, reason=f"http {response.status_code}")

        data = _json_body(response)

        if data.get("error"):
            return OfferReply(accepted=False, reason=str(data["error"]))

        accepted = data.get("accepted", True)
        return OfferReply(accepted=bool(accepted), reason=data.get("reason"))

    def withdraw_offer(self, driver_id: str, request_id: str) -> None:
        """
        Ask the endpoint to release the driver from the request, whether the
        offer is still pending or was already accepted.

        Raises OfferTransportError (or TransportTimeout) when the endpoint
        cannot be reached or refuses.
        """
        payload = {"action": "release_driver", "driverId": driver_id, "rideRequestId": request_id}
        response = self._post(payload, f"withdrawal from {driver_id}")

        if not response.ok:
            raise OfferTransportError(
                f"withdrawal from {driver_id} answered http {response.status_code}",
                collaborator="HttpOfferTransport",
            )

    def _post(self, payload: Dict[str, Any], what: str):
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            return self.session.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransportTimeout(f"{what} timed out", collaborator="HttpOfferTransport") from exc
        except requests.RequestException as exc:
            raise OfferTransportError(f"{what} failed: {exc}", collaborator="HttpOfferTransport") from exc


def _json_body(response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
