"""
Delivers the lead captured during a call once the call ends.

Two optional channels: an SMS alert through Twilio and a JSON form submission
to an intake endpoint. Each channel is skipped when it is not configured, and
a failing channel never affects the other or the call teardown.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from receptionist.config.constants import LOGGER_NAME
from receptionist.config.settings import RelaySettings
from receptionist.models.lead import LeadRecord
from receptionist.services.call_control import build_twilio_client

logger = logging.getLogger(LOGGER_NAME)

FORM_TIMEOUT = 10  # seconds
SMS_MAX_LENGTH = 1600


class LeadNotifier:
    """Sends lead alerts for finished calls."""

    def __init__(self, settings: RelaySettings, twilio_client=None):
        self.settings = settings
        self._client = twilio_client

    @property
    def client(self):
        if self._client is None:
            self._client = build_twilio_client(self.settings)
        return self._client

    def format_alert(self, call_sid: str, lead: LeadRecord) -> str:
        prefix = "URGENT " if lead.priority else ""
        text = f"{prefix}New lead for {self.settings.business_name}: {lead.summary()} (call {call_sid})"
        return text[:SMS_MAX_LENGTH]

    def form_payload(self, call_sid: str, lead: LeadRecord) -> Dict[str, Any]:
        return {
            "call_sid": call_sid,
            "business": self.settings.business_name,
            "lead": lead.to_dict(),
        }

    async def notify(self, call_sid: str, lead: LeadRecord) -> Dict[str, bool]:
        """
        Send the lead through every configured channel.

        Args:
            call_sid: Identifier of the finished call
            lead: The lead record accumulated during the call

        Returns:
            Dict mapping each attempted channel (``sms``, ``form``) to its outcome
        """
        results: Dict[str, bool] = {}
        if self.settings.lead_alert_number and self.settings.twilio_from_number:
            results["sms"] = await self._send_sms(call_sid, lead)
        if self.settings.lead_form_url:
            results["form"] = await self._submit_form(call_sid, lead)
        if not results:
            logger.info(f"[LEAD] no notification channel configured for call {call_sid}")
        return results

    async def _send_sms(self, call_sid: str, lead: LeadRecord) -> bool:
        client = self.client
        if client is None:
            logger.error("[LEAD] Twilio credentials not configured, cannot send SMS alert")
            return False
        body = self.format_alert(call_sid, lead)
        try:
            await asyncio.to_thread(
                client.messages.create,
                to=self.settings.lead_alert_number,
                from_=self.settings.twilio_from_number,
                body=body,
            )
        except Exception as e:
            logger.error(f"[LEAD] SMS alert failed for call {call_sid}: {e}")
            return False
        logger.info(f"[LEAD] SMS alert sent for call {call_sid}")
        return True

    async def _submit_form(self, call_sid: str, lead: LeadRecord) -> bool:
        url: Optional[str] = self.settings.lead_form_url
        try:
            response = await asyncio.to_thread(
                requests.post,
                url,
                json=self.form_payload(call_sid, lead),
                timeout=FORM_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"[LEAD] form submission failed for call {call_sid}: {e}")
            return False
        logger.info(f"[LEAD] form submitted for call {call_sid} (status {response.status_code})")
        return True
