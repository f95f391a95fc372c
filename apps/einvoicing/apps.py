"""
Django app configuration for e-Invoicing app
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class EInvoicingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.einvoicing"
    verbose_name = "e-Invoicing"

    def ready(self) -> None:
        """Schedule recurring e-invoicing tasks when Django starts."""
        from .settings import einvoicing_settings  # noqa: PLC0415

        if einvoicing_settings.enabled:
            try:
                from .tasks import schedule_einvoicing_tasks  # noqa: PLC0415

                schedule_einvoicing_tasks()
            except Exception:
                logger.warning("⚠️ [e-Invoicing] Failed to schedule e-invoicing tasks during startup")
