from __future__ import annotations

import re
from dataclasses import dataclass

import requests

from notebook_tracker.tracker.dispatcher import SmsError


API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioError(SmsError):
    pass


def format_phone_number(raw: str, default_country_code: str = "+1") -> str:
    """Normalize a guardian phone number to E.164.

    Numbers without a leading '+' and at most 10 digits get the default
    country code; longer ones are assumed to already carry one.
    """

    raw = raw.strip()
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+"):
        return f"+{digits}"
    if len(digits) <= 10:
        code = re.sub(r"\D", "", default_country_code)
        return f"+{code}{digits}"
    return f"+{digits}"


@dataclass
class TwilioClient:
    account_sid: str | None
    auth_token: str | None
    from_number: str | None
    default_country_code: str = "+1"

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send_sms(self, to: str, body: str, timeout_s: int = 30) -> str:
        """Send one SMS through the Twilio Messages API and return the message SID.

        Raises TwilioError when credentials are missing, the input is empty or the
        API call fails. ``delivery_unknown`` is set on the error when the request
        may have been accepted before the connection broke.
        """

        if not self.is_configured():
            raise TwilioError(
                "Twilio is not configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER."
            )
        if not to or not body:
            raise TwilioError("Missing required parameters: to and body")

        url = f"{API_BASE}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "To": format_phone_number(to, self.default_country_code),
            "From": self.from_number,
            "Body": body,
        }

        try:
            resp = requests.post(url, data=data, auth=(self.account_sid, self.auth_token), timeout=timeout_s)
        except requests.ConnectTimeout as e:
            raise TwilioError(f"Twilio connection timed out: {e}") from e
        except (requests.ReadTimeout, requests.ConnectionError) as e:
            # the request may already have reached Twilio
            raise TwilioError(f"Twilio request interrupted: {e}", delivery_unknown=True) from e
        except requests.RequestException as e:
            raise TwilioError(f"Twilio request failed: {e}") from e

        if resp.status_code not in (200, 201):
            raise TwilioError(f"Twilio API error {resp.status_code}: {resp.text[:500]}")

        try:
            return str(resp.json()["sid"])
        except (ValueError, KeyError) as e:
            raise TwilioError(f"Unexpected Twilio response shape: {e}") from e
