"""
Call control through the Twilio REST API and TwiML documents.

``CallRedirector`` points a live call at new TwiML (operator transfer or the
goodbye message). The TwiML builders produce the documents served by the HTTP
glue in ``receptionist.main``.
"""

import asyncio
import logging
from typing import Optional

from twilio.rest import Client as TwilioClient
from twilio.twiml.voice_response import Connect, Stream, VoiceResponse

from receptionist.config.constants import LOGGER_NAME, TWIML_VOICE
from receptionist.config.settings import RelaySettings

logger = logging.getLogger(LOGGER_NAME)

CONNECTING_MESSAGE = "Thanks for calling {business}. Connecting you now."
TRANSFER_MESSAGE = "One moment while I connect you."
NO_OPERATOR_MESSAGE = "Sorry, nobody is available to take your call right now. We'll call you back shortly."
GOODBYE_MESSAGE = "Thanks for calling. We'll follow up shortly. Goodbye."


def build_twilio_client(settings: RelaySettings) -> Optional[TwilioClient]:
    """REST client from the configured credentials, or None if they are missing."""
    if not settings.has_twilio_credentials:
        return None
    return TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)


class CallRedirector:
    """
    Redirects a live call to TwiML served under the public base URL.

    The REST call is blocking, so it runs in the default executor. Failures are
    logged and reported through the return value; the media session carries on.
    """

    def __init__(self, settings: RelaySettings, client: Optional[TwilioClient] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Optional[TwilioClient]:
        if self._client is None:
            self._client = build_twilio_client(self.settings)
        return self._client

    def redirect_url(self, destination: str) -> str:
        return f"{self.settings.public_base_url}/{destination}"

    async def redirect(self, call_sid: str, destination: str) -> bool:
        """
        Redirect a call.

        Args:
            call_sid: Identifier of the live call
            destination: ``transfer`` or ``goodbye``

        Returns:
            bool: True if the REST update succeeded
        """
        client = self.client
        if client is None:
            logger.error(f"[CTRL] Twilio credentials not configured, cannot redirect call {call_sid}")
            return False

        url = self.redirect_url(destination)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: client.calls(call_sid).update(url=url, method="POST"),
            )
        except Exception as e:
            logger.error(f"[CTRL] {destination} redirect failed for call {call_sid}: {e}")
            return False

        logger.info(f"[CTRL] call {call_sid} redirected to {url}")
        return True


def build_stream_twiml(settings: RelaySettings) -> str:
    """TwiML answering an inbound call by streaming its audio to the relay."""
    response = VoiceResponse()
    response.say(CONNECTING_MESSAGE.format(business=settings.business_name), voice=TWIML_VOICE)

    connect = Connect()
    stream = Stream(
        url=settings.media_stream_url,
        status_callback=f"{settings.public_base_url}/stream-status",
        status_callback_method="POST",
    )
    connect.append(stream)
    response.append(connect)
    return str(response)


def build_transfer_twiml(settings: RelaySettings) -> str:
    """TwiML for the ``transfer`` destination: dial the operator if one is configured."""
    response = VoiceResponse()
    if settings.transfer_number:
        response.say(TRANSFER_MESSAGE, voice=TWIML_VOICE)
        response.dial(settings.transfer_number)
    else:
        logger.warning("[CTRL] transfer requested but TRANSFER_NUMBER is not configured")
        response.say(NO_OPERATOR_MESSAGE, voice=TWIML_VOICE)
        response.hangup()
    return str(response)


def build_goodbye_twiml() -> str:
    """TwiML for the ``goodbye`` destination."""
    response = VoiceResponse()
    response.say(GOODBYE_MESSAGE, voice=TWIML_VOICE)
    response.hangup()
    return str(response)

