"""
e-Invoicing configurable settings.

Values resolve through Django settings (``EINVOICING_<KEY>``) and fall back
to ``EINVOICING_DEFAULTS``. Per-tenant provider credentials and numbering
resolutions live on ``ProviderConfig``, not here.

Usage:
    from apps.einvoicing.settings import einvoicing_settings

    batch = einvoicing_settings.pending_batch_size
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings as django_settings

logger = logging.getLogger(__name__)


# ===============================================================================
# CONSTANTS - Fixed by DIAN / MATIAS API v2 and not configurable
# ===============================================================================

PROVIDER_API_PREFIX = "/api/ubl2.1"

# MATIAS type_document_id values
DOCUMENT_TYPE_IDS = {
    "invoice": 7,  # Factura de Venta (DIAN 01)
    "export_invoice": 8,  # Factura de Exportacion (DIAN 02)
    "support_document": 11,  # Documento Soporte (DIAN 05)
    "pos": 20,  # Documento Equivalente POS (DIAN 20)
    "credit_note": 5,  # Nota Credito (DIAN 91)
    "debit_note": 4,  # Nota Debito (DIAN 92)
}

OPERATION_TYPE_SALE = 1
OPERATION_TYPE_CREDIT_NOTE = 12
OPERATION_TYPE_DEBIT_NOTE = 13

# Colombia defaults for the final consumer (walk-in customer)
FINAL_CONSUMER_DNI = "222222222222"
FINAL_CONSUMER_NAME = "CONSUMIDOR FINAL"
DEFAULT_CUSTOMER_ADDRESS = "Sin direccion"
DEFAULT_CUSTOMER_EMAIL = "noreply@flowp.com"
DEFAULT_POSTAL_CODE = "110111"
DEFAULT_COUNTRY_ID = 170  # ISO 3166-1 numeric, Colombia
DEFAULT_CITY_ID = 149  # Bogota D.C.

# Fallback QR when the provider omits one
DIAN_DOCUMENT_SEARCH_URL = "https://catalogo-vpfe.dian.gov.co/User/SearchDocument?DocumentKey={cufe}"

# Provider messages meaning the document had already been validated by DIAN
ALREADY_VALIDATED_MARKERS = (
    "ya se encuentra validado",
    "Solicitud procesada por la DIAN",
)


# ===============================================================================
# DEFAULTS
# ===============================================================================

EINVOICING_DEFAULTS: dict[str, Any] = {
    "einvoicing.enabled": True,
    "einvoicing.provider_base_url": "https://api-v2.matias-api.com",
    "einvoicing.request_timeout_seconds": 30,
    "einvoicing.token_lifetime_days": 365,
    "einvoicing.max_retries": 3,
    "einvoicing.pending_batch_size": 10,
    "einvoicing.retry_batch_size": 5,
    "einvoicing.worker_interval_minutes": 1,
    "einvoicing.stale_sent_minutes": 15,
    "einvoicing.metrics_enabled": True,
    "einvoicing.metrics_prefix": "einvoicing",
}


class EInvoicingSettings:
    """Typed access to e-invoicing settings with a Django settings -> defaults chain."""

    def _get_setting(self, key: str, default: Any = None) -> Any:
        django_key = key.replace(".", "_").upper()
        django_value = getattr(django_settings, django_key, None)
        if django_value is not None:
            return django_value
        return EINVOICING_DEFAULTS.get(key, default)

    def _get_string(self, key: str, default: str = "") -> str:
        value = self._get_setting(key, default)
        return str(value) if value is not None else default

    def _get_int(self, key: str, default: int = 0) -> int:
        value = self._get_setting(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
            return default

    def _get_bool(self, key: str, default: bool = False) -> bool:
        value = self._get_setting(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    # --- General ---

    @property
    def enabled(self) -> bool:
        """Whether scheduled processing is installed at startup."""
        return self._get_bool("einvoicing.enabled", True)

    @property
    def provider_base_url(self) -> str:
        return self._get_string("einvoicing.provider_base_url").rstrip("/")

    @property
    def request_timeout_seconds(self) -> int:
        return self._get_int("einvoicing.request_timeout_seconds", 30)

    @property
    def token_lifetime_days(self) -> int:
        """Token validity assumed when the login response carries no expiry."""
        return self._get_int("einvoicing.token_lifetime_days", 365)

    # --- Worker ---

    @property
    def max_retries(self) -> int:
        return self._get_int("einvoicing.max_retries", 3)

    @property
    def pending_batch_size(self) -> int:
        return self._get_int("einvoicing.pending_batch_size", 10)

    @property
    def retry_batch_size(self) -> int:
        return self._get_int("einvoicing.retry_batch_size", 5)

    @property
    def worker_interval_minutes(self) -> int:
        return self._get_int("einvoicing.worker_interval_minutes", 1)

    @property
    def stale_sent_minutes(self) -> int:
        """Age after which a SENT document is assumed abandoned by a crashed worker."""
        return self._get_int("einvoicing.stale_sent_minutes", 15)

    # --- Observability ---

    @property
    def metrics_enabled(self) -> bool:
        return self._get_bool("einvoicing.metrics_enabled", True)

    @property
    def metrics_prefix(self) -> str:
        return self._get_string("einvoicing.metrics_prefix", "einvoicing")


einvoicing_settings = EInvoicingSettings()
