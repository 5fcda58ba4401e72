"""
Portal Webhook Forwarder.

Forwards a finished consultation to the clinic portal as multipart form
data: a JSON 'data' field plus an optional 'image' file. Fire-and-log:
failures are reported in the ForwardResult and never raised, and they
never roll back the local store write.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:([A-Za-z-+/]+);base64,(.+)$", re.DOTALL)


@dataclass
class ForwardResult:
    success: bool
    message: str
    response: Optional[Any] = None


def decode_data_url(image: str) -> Optional[tuple[str, bytes]]:
    """(content_type, bytes) for a base64 data URL, None if malformed."""
    match = _DATA_URL.match(image or "")
    if not match:
        return None
    try:
        return match.group(1), base64.b64decode(match.group(2))
    except (binascii.Error, ValueError):
        return None


class PortalWebhookForwarder:
    def __init__(
        self,
        url: str = settings.PORTAL_WEBHOOK_URL,
        secret: str = settings.WEBHOOK_SECRET,
        timeout: float = settings.WEBHOOK_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    def enrich(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Stamps the clinic identity the portal routes on."""
        return {
            **fields,
            "source": settings.CLINIC_SOURCE,
            "chatbotSource": settings.CLINIC_SOURCE,
            "clinic": settings.CLINIC_SOURCE,
            "clinic_group": settings.CLINIC_GROUP,
            "clinic_domain": settings.CLINIC_DOMAIN,
            "preferred_clinic": fields.get("preferred_clinic") or settings.PREFERRED_CLINIC,
            "created_at": fields.get("created_at") or datetime.utcnow().isoformat(),
        }

    async def forward(self, fields: Mapping[str, Any], image: Optional[str] = None) -> ForwardResult:
        payload = self.enrich(fields)
        files = None

        if image:
            decoded = decode_data_url(image)
            if decoded:
                content_type, blob = decoded
                files = {"image": ("patient_image.png", blob, content_type)}
            else:
                logger.warning("Image payload is not a base64 data URL; forwarding without image")

        logger.info(f"Submitting consultation to portal: {self.url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    data={"data": json.dumps(payload, default=str)},
                    files=files,
                    headers={"X-Webhook-Secret": self.secret},
                )
        except httpx.HTTPError as e:
            logger.error(f"Portal webhook exception: {e}")
            return ForwardResult(success=False, message=f"Webhook exception: {e}")

        try:
            body: Any = response.json()
        except ValueError:
            body = {"rawResponse": response.text[:200]}

        if response.is_success:
            logger.info("Portal webhook submission successful")
            return ForwardResult(success=True, message="Webhook submitted successfully", response=body)

        logger.error(f"Portal webhook submission failed: {response.status_code} {response.reason_phrase}")
        return ForwardResult(
            success=False,
            message=f"Webhook failed: {response.status_code} {response.reason_phrase}",
            response=body,
        )
