"""
MATIAS API v2 client for DIAN electronic documents.

This client handles all communication with the MATIAS e-invoicing provider:
- Email/password login with the access token cached encrypted per tenant
- One transparent re-authentication on 401
- POS/invoice, credit note, debit note and support document submission
- Last issued number, status lookup and PDF download

Every document operation returns a ``ProviderResponse`` with the uniform
``success / data / errors`` shape. Transport failures (timeouts, connection
errors) raise ``ProviderNetworkError`` after the configured attempts; a
request that cannot be sent at all raises it immediately.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any

import requests
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.common.encryption import DecryptionError

from .exceptions import ProviderAuthenticationError, ProviderNetworkError, SubmissionError
from .metrics import metrics
from .models import ProviderConfig
from .settings import PROVIDER_API_PREFIX, einvoicing_settings

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60
MAX_RETRY_AFTER_SECONDS = 60


def parse_retry_after(value: str | None) -> float:
    """
    Seconds to wait from a Retry-After header (delta-seconds or HTTP-date).

    Unparseable values fall back to the default; waits are capped so a
    worker batch is never parked for long.
    """
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    value = value.strip()
    if value.isdigit():
        seconds = float(value)
    else:
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER_SECONDS
        if timezone.is_naive(retry_at):
            retry_at = retry_at.replace(tzinfo=UTC)
        seconds = (retry_at - timezone.now()).total_seconds()
    return min(max(seconds, 0.0), MAX_RETRY_AFTER_SECONDS)


@dataclass
class MatiasConfig:
    """Connection settings for one tenant's MATIAS account."""

    email: str
    password: str
    base_url: str = ""
    timeout: int = 30
    max_attempts: int = 3
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        self.base_url = (self.base_url or einvoicing_settings.provider_base_url).rstrip("/")

    @classmethod
    def from_provider_config(cls, config: ProviderConfig) -> MatiasConfig:
        return cls(
            email=config.email,
            password=config.get_password(),
            base_url=config.base_url,
            timeout=einvoicing_settings.request_timeout_seconds,
        )

    @property
    def auth_url(self) -> str:
        return f"{self.base_url}/auth/login"

    @property
    def api_url(self) -> str:
        return f"{self.base_url}{PROVIDER_API_PREFIX}"

    def is_valid(self) -> bool:
        return bool(self.email and self.password)


@dataclass
class ProviderResponse:
    """Uniform result of a provider operation."""

    success: bool
    data: dict[str, Any] | None = None
    errors: dict[str, Any] | list[Any] = field(default_factory=list)
    message: str = ""
    status_code: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: requests.Response) -> ProviderResponse:
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text[:500]}
        if not isinstance(body, dict):
            body = {"data": body}

        data = body.get("data") if isinstance(body.get("data"), dict) else None
        success = response.ok and bool(body.get("success", True))
        return cls(
            success=success,
            data=data,
            errors=body.get("errors") or [],
            message=str(body.get("message") or ""),
            status_code=response.status_code,
            raw=body,
        )

    @classmethod
    def error(cls, message: str, status_code: int = 0) -> ProviderResponse:
        return cls(success=False, message=message, status_code=status_code)

    @property
    def error_message(self) -> str:
        if self.message:
            return self.message
        if self.errors:
            return str(self.errors)
        return f"Provider returned HTTP {self.status_code}"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form stored as ``response_json``."""
        return {
            "success": self.success,
            "status_code": self.status_code,
            "message": self.message,
            "data": self.data,
            "errors": self.errors,
            "body": self.raw,
        }


class MatiasClient:
    """
    Client for the MATIAS e-invoicing API.

    Usage:
        client = MatiasClient(MatiasConfig.from_provider_config(config), provider_config=config)
        response = client.submit(payload.to_dict())
        if response.success:
            pdf = client.download_pdf(response.data["track_id"])
    """

    def __init__(self, config: MatiasConfig, provider_config: ProviderConfig | None = None):
        self.config = config
        self.provider_config = provider_config
        self._session: requests.Session | None = None
        self._access_token: str | None = None

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "User-Agent": "Flowp-EInvoicing/1.0",
                }
            )
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> MatiasClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- Authentication ---

    def authenticate(self) -> str:
        """
        Log in and cache the access token.

        Raises:
            ProviderAuthenticationError: If credentials are rejected or the reply is unusable
        """
        payload = {"email": self.config.email, "password": self.config.password, "remember_me": 0}
        with metrics.time_provider_request("auth_login") as ctx:
            response = self._request_with_retry("POST", self.config.auth_url, json=payload)
            ctx["status_code"] = response.status_code

        if not response.ok:
            logger.error(f"[e-Invoicing Client] Login failed with HTTP {response.status_code}")
            raise ProviderAuthenticationError(f"Login failed with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            # An HTML error page usually means a wrong base URL
            raise ProviderAuthenticationError("Login reply was not JSON; check the provider base URL") from e

        token = body.get("access_token")
        if not token:
            raise ProviderAuthenticationError("Login reply carried no access_token")

        self._access_token = token
        if self.provider_config is not None:
            self.provider_config.cache_access_token(token, self._token_expiry(body))
        logger.info("[e-Invoicing Client] Authenticated with provider, token cached")
        return token

    def test_connection(self) -> tuple[bool, str]:
        """Check the stored credentials with a fresh login."""
        try:
            self.authenticate()
        except SubmissionError as e:
            logger.warning(f"⚠️ [e-Invoicing Client] Connection test failed: {e}")
            return False, f"Failed to authenticate with the provider: {e}"
        return True, "Connection successful"

    def _token_expiry(self, body: dict[str, Any]) -> datetime:
        """Expiry from ``expires_at`` or ``expires_in``; default lifetime otherwise."""
        expires_at = body.get("expires_at")
        if expires_at:
            parsed = parse_datetime(str(expires_at))
            if parsed is not None:
                return parsed if timezone.is_aware(parsed) else timezone.make_aware(parsed)
        expires_in = body.get("expires_in")
        if expires_in:
            return timezone.now() + timedelta(seconds=int(expires_in))
        return timezone.now() + timedelta(days=einvoicing_settings.token_lifetime_days)

    def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token
        if self.provider_config is not None:
            cached = self.provider_config.get_cached_access_token()
            if cached:
                self._access_token = cached
                return cached
        return self.authenticate()

    # --- Document Operations ---

    def submit(self, payload: dict[str, Any]) -> ProviderResponse:
        """Submit a POS-equivalent document or invoice."""
        return self._api_request("POST", "/invoice", "invoice", json=payload)

    def submit_credit_note(self, payload: dict[str, Any]) -> ProviderResponse:
        return self._api_request("POST", "/notes/credit", "notes_credit", json=payload)

    def submit_debit_note(self, payload: dict[str, Any]) -> ProviderResponse:
        return self._api_request("POST", "/notes/debit", "notes_debit", json=payload)

    def submit_support_document(self, payload: dict[str, Any]) -> ProviderResponse:
        """Submit a support document (purchase from a non-invoicing supplier)."""
        return self._api_request("POST", "/ds/document", "ds_document", json=payload)

    def get_last_document(self, resolution: str, prefix: str) -> int:
        """
        Last number the provider has on record for this resolution/prefix.

        Returns 0 when the provider has no history for the resolution.

        Raises:
            SubmissionError: If the provider cannot answer or the number is unusable
        """
        response = self._api_request(
            "GET",
            "/documents/last",
            "documents_last",
            params={"resolution": resolution, "prefix": prefix},
        )
        if not response.success:
            raise SubmissionError(f"Last document lookup failed: {response.error_message}")
        number = (response.data or {}).get("number") or response.raw.get("number")
        if number is None:
            return 0
        try:
            return int(number)
        except (TypeError, ValueError) as e:
            raise SubmissionError(f"Provider returned an unusable last document number: {number!r}") from e

    def get_status(self, resolution: str, prefix: str, number: int) -> ProviderResponse:
        """Look a document up by its legal number."""
        return self._api_request(
            "GET",
            "/status",
            "status",
            params={"resolution": resolution, "prefix": prefix, "number": number},
        )

    def get_status_by_track_id(self, track_id: str) -> ProviderResponse:
        return self._api_request("GET", f"/status/document/{track_id}", "status_document")

    def download_pdf(self, track_id: str) -> bytes | None:
        """Rendered PDF of an accepted document, or None when unavailable."""
        response = self._api_call(
            "GET",
            f"/documents/pdf/{track_id}",
            "documents_pdf",
            headers={"Accept": "application/pdf"},
        )
        if not response.ok:
            logger.warning(f"[e-Invoicing Client] PDF download for {track_id} failed: HTTP {response.status_code}")
            return None
        return response.content or None

    # --- Transport ---

    def _api_request(self, method: str, path: str, endpoint: str, **kwargs: Any) -> ProviderResponse:
        return ProviderResponse.from_response(self._api_call(method, path, endpoint, **kwargs))

    def _api_call(self, method: str, path: str, endpoint: str, **kwargs: Any) -> requests.Response:
        """Authenticated API call; re-authenticates once on 401."""
        url = f"{self.config.api_url}{path}"
        extra_headers = kwargs.pop("headers", {})

        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self._get_access_token()}", **extra_headers}
            with metrics.time_provider_request(endpoint) as ctx:
                response = self._request_with_retry(method, url, headers=headers, **kwargs)
                ctx["status_code"] = response.status_code

            if response.status_code != 401 or attempt == 1:
                return response

            logger.info(f"[e-Invoicing Client] Token rejected on {endpoint}, re-authenticating")
            self._access_token = None
            if self.provider_config is not None:
                self.provider_config.clear_access_token()
            self.authenticate()

        return response

    def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Make HTTP request with retry logic."""
        kwargs.setdefault("timeout", self.config.timeout)
        last_error: Exception | None = None

        for attempt in range(self.config.max_attempts):
            try:
                response = self.session.request(method, url, **kwargs)

                # Check for rate limiting
                if response.status_code == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    logger.warning(f"[e-Invoicing Client] Rate limited, waiting {retry_after:.0f}s")
                    time.sleep(retry_after)
                    continue

                return response

            except requests.Timeout as e:
                last_error = e
                logger.warning(f"[e-Invoicing Client] Request timeout (attempt {attempt + 1}/{self.config.max_attempts})")
            except requests.ConnectionError as e:
                last_error = e
                logger.warning(f"[e-Invoicing Client] Connection error (attempt {attempt + 1}/{self.config.max_attempts})")
            except requests.RequestException as e:
                # Malformed URL, bad headers and the like: retrying cannot help
                logger.error(f"🔥 [e-Invoicing Client] Request to {url} could not be sent: {e}")
                raise ProviderNetworkError(f"Request failed: {e}") from e

            # Wait before retry (exponential backoff)
            if attempt < self.config.max_attempts - 1:
                time.sleep(self.config.retry_delay * (2**attempt))

        raise ProviderNetworkError(f"Request failed after {self.config.max_attempts} attempts: {last_error}")


def get_client_for_tenant(tenant_id: Any) -> MatiasClient | None:
    """
    Build a client for the tenant's MATIAS account.

    Returns None when the tenant has no enabled configuration, no
    credentials, or a password that cannot be decrypted.
    """
    config = ProviderConfig.objects.filter(tenant_id=tenant_id).first()
    if config is None or not config.is_enabled:
        logger.info(f"[e-Invoicing Client] Provider not enabled for tenant {tenant_id}")
        return None
    if not config.has_credentials:
        logger.warning(f"[e-Invoicing Client] Provider credentials not configured for tenant {tenant_id}")
        return None

    try:
        matias_config = MatiasConfig.from_provider_config(config)
    except DecryptionError:
        logger.error(f"🔥 [e-Invoicing Client] Could not decrypt provider password for tenant {tenant_id}")
        return None

    return MatiasClient(matias_config, provider_config=config)
