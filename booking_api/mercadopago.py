import hmac
import hashlib
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import requests

from .config import MercadoPagoSettings

logger = logging.getLogger(__name__)

SIGNATURE_MAX_AGE_SECONDS = 5 * 60


class MercadoPagoError(Exception):
    def __init__(self, message: str, status_code: int = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _mp_timestamp(value: datetime) -> str:
    # Mercado Pago expects ISO-8601 with milliseconds and an offset
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds')


class MercadoPagoClient:
    """
    Checkout preferences against the Mercado Pago REST API.

    Facility tokens take precedence; the platform default token from the
    settings is used when a facility has none.
    """

    def __init__(self, settings: MercadoPagoSettings, session: requests.Session = None):
        self.settings = settings
        self.session = session or requests.Session()

    def build_preference(
        self,
        reference: str,
        title: str,
        amount: float,
        description: str = None,
        payer_email: str = None,
        now: datetime = None
    ) -> Dict:
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=self.settings.expiration_minutes)

        preference = {
            'items': [{
                'id': reference,
                'title': title,
                'description': description or title,
                'quantity': 1,
                'currency_id': self.settings.default_currency,
                'unit_price': amount,
            }],
            'external_reference': reference,
            'back_urls': {
                'success': f"{self.settings.default_success_url}?payment={reference}",
                'failure': f"{self.settings.default_failure_url}?payment={reference}",
                'pending': f"{self.settings.default_pending_url}?payment={reference}",
            },
            'auto_return': 'approved',
            'notification_url': self.settings.webhook_url,
            'expires': True,
            'expiration_date_from': _mp_timestamp(now),
            'expiration_date_to': _mp_timestamp(expires_at),
        }
        if payer_email:
            preference['payer'] = {'email': payer_email}
        return preference

    def create_preference(self, access_token: Optional[str] = None, **kwargs) -> Dict:
        token = access_token or self.settings.default_access_token
        if not token:
            raise MercadoPagoError("No Mercado Pago access token configured")

        body = self.build_preference(**kwargs)
        url = f"{self.settings.api_base_url}/checkout/preferences"

        try:
            resp = self.session.post(
                url,
                json=body,
                headers={'Authorization': f"Bearer {token}"},
                timeout=10
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Mercado Pago request failed for {body['external_reference']}: {e}")
            raise MercadoPagoError(f"Mercado Pago unavailable: {e}")

        if resp.status_code >= 400:
            logger.error(f"Mercado Pago rejected preference {body['external_reference']}: "
                         f"{resp.status_code} {resp.text[:200]}")
            raise MercadoPagoError("Mercado Pago rejected the preference", resp.status_code)

        data = resp.json()
        logger.info(f"Payment preference created: {body['external_reference']} - {data.get('id')}")

        init_point = data.get('sandbox_init_point') if self.settings.is_sandbox else data.get('init_point')
        return {
            'preference_id': data.get('id', ''),
            'init_point': init_point or data.get('init_point', ''),
            'expires_at': body['expiration_date_to'],
        }


def verify_webhook_signature(
    secret: str,
    signature: str,
    data_id: str,
    request_id: str = None,
    now: float = None,
    max_age: int = SIGNATURE_MAX_AGE_SECONDS
) -> bool:
    """
    Check an ``x-signature`` header of the form ``ts=<epoch>,v1=<hex>``.

    The signed manifest is ``id:<data_id>;request-id:<request_id>;ts:<ts>;``
    and the digest is HMAC-SHA256 keyed with the webhook secret.
    """
    parts = {}
    for part in (signature or '').split(','):
        key, _, value = part.strip().partition('=')
        if key and value:
            parts[key] = value

    timestamp = parts.get('ts')
    digest = parts.get('v1')
    if not timestamp or not digest:
        logger.debug("Signature missing timestamp or hash")
        return False

    try:
        ts = int(timestamp)
    except ValueError:
        return False

    now = time.time() if now is None else now
    if now - ts > max_age:
        logger.debug(f"Signature too old: {now - ts:.0f}s")
        return False

    manifest = f"id:{data_id or ''};request-id:{request_id or ''};ts:{timestamp};"
    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest.encode(), expected.encode())
