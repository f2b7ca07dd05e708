"""
Partner lookups for the order service.

Order events carry the partner's name and address so that agents and
customers can be told where to pick up. The order service fetches them from
the partner service over HTTP (httpx). A missing partner or an unreachable
partner service degrades to empty strings; it never blocks a transition.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx


@dataclass(frozen=True)
class PartnerInfo:
    name: str = ""
    address: str = ""


UNKNOWN_PARTNER = PartnerInfo()


class PartnerDirectory:
    """
    Client for ``GET {base_url}/partners/{id}``.

    Attributes:
        client: httpx.Client (injectable, e.g. with a MockTransport in tests)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def get_partner(self, partner_id: int) -> PartnerInfo:
        try:
            response = self.client.get(f"/partners/{partner_id}")
        except httpx.HTTPError as e:
            self.logger.warning(
                "Partner lookup failed",
                extra={"partner_id": partner_id, "error": str(e)},
            )
            return UNKNOWN_PARTNER

        if response.status_code == 404:
            self.logger.warning("Partner not found", extra={"partner_id": partner_id})
            return UNKNOWN_PARTNER

        if response.is_error:
            self.logger.warning(
                "Partner service returned an error",
                extra={"partner_id": partner_id, "status_code": response.status_code},
            )
            return UNKNOWN_PARTNER

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            self.logger.warning(
                "Partner service returned an unreadable body",
                extra={"partner_id": partner_id, "status_code": response.status_code},
            )
            return UNKNOWN_PARTNER

        return PartnerInfo(name=body.get("name") or "", address=body.get("address") or "")

    def close(self) -> None:
        self.client.close()


class StaticPartnerDirectory:
    """Fixed partner table; used when no partner service is configured."""

    def __init__(self, partners: Optional[dict] = None):
        self.partners = dict(partners or {})

    def get_partner(self, partner_id: int) -> PartnerInfo:
        return self.partners.get(partner_id, UNKNOWN_PARTNER)

    def close(self) -> None:
        pass
