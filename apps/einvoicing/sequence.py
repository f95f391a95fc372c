"""
Legal document numbering per (tenant, resolution, prefix).

Allocation takes a row lock on the ``SequenceCounter`` for the whole
read-increment-write cycle and commits the increment in the same short
transaction. A number handed out is never handed out again, even if the
document that received it is later rejected.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from django.db import IntegrityError, transaction

from .client import MatiasClient, get_client_for_tenant
from .exceptions import ConfigurationError, RangeExceeded, SubmissionError
from .metrics import metrics
from .models import ProviderConfig, SequenceCounter

logger = logging.getLogger(__name__)


class SequenceAllocator:
    """
    Allocate the next legal number for a tenant's resolution.

    Usage:
        allocator = SequenceAllocator()
        number = allocator.next_number(tenant_id, "18760000001", "SETP")
    """

    def __init__(self, client_factory: Callable[[Any], MatiasClient | None] | None = None):
        self.client_factory = client_factory

    def next_number(self, tenant_id: Any, resolution_number: str, prefix: str) -> int:
        """
        Reserve and return the next number.

        Raises:
            ConfigurationError: No resolution given, or the starting point cannot be determined
            RangeExceeded: The resolution's authorized range is exhausted (counter unchanged)
        """
        if not resolution_number:
            raise ConfigurationError("No resolution number configured")

        key = {"tenant_id": tenant_id, "resolution_number": resolution_number, "prefix": prefix}

        # Seed outside the lock so a slow provider call never holds it
        seed: tuple[int, int | None] | None = None
        if not SequenceCounter.objects.filter(**key).exists():
            seed = self._initial_state(tenant_id, resolution_number, prefix)

        with transaction.atomic():
            counter = SequenceCounter.objects.select_for_update().filter(**key).first()

            if counter is None:
                if seed is None:
                    seed = self._initial_state(tenant_id, resolution_number, prefix)
                first_number, range_end = seed
                try:
                    with transaction.atomic():
                        counter = SequenceCounter.objects.create(
                            **key, current_number=first_number, range_end=range_end
                        )
                except IntegrityError:
                    # Another process created it - get it with lock
                    counter = SequenceCounter.objects.select_for_update().get(**key)
                else:
                    self._check_range(counter, first_number)
                    metrics.record_allocation("initialized")
                    logger.info(
                        f"[e-Invoicing Sequence] Initialized {prefix!r}/{resolution_number} "
                        f"for tenant {tenant_id} at {first_number}"
                    )
                    return first_number

            next_value = counter.current_number + 1
            self._check_range(counter, next_value)
            counter.current_number = next_value
            counter.save(update_fields=["current_number", "updated_at"])

        metrics.record_allocation("allocated")
        return next_value

    def _check_range(self, counter: SequenceCounter, value: int) -> None:
        if counter.range_end is not None and value > counter.range_end:
            metrics.record_allocation("range_exceeded")
            logger.error(
                f"🔥 [e-Invoicing Sequence] Range exhausted for {counter.prefix!r}/{counter.resolution_number} "
                f"(tenant {counter.tenant_id}, limit {counter.range_end})"
            )
            raise RangeExceeded(counter.resolution_number, counter.prefix, counter.range_end)

    def _initial_state(self, tenant_id: Any, resolution_number: str, prefix: str) -> tuple[int, int | None]:
        """
        First number and range end for a new counter.

        Prefers the configured starting number, then one above the provider's
        last issued number, then 1.
        """
        config = ProviderConfig.objects.filter(tenant_id=tenant_id).first()
        range_end = config.ending_number if config else None

        if config and config.starting_number and config.starting_number > 0:
            return config.starting_number, range_end

        client = (self.client_factory or get_client_for_tenant)(tenant_id)
        if client is None:
            return 1, range_end

        try:
            with client:
                last_number = client.get_last_document(resolution_number, prefix)
        except SubmissionError as e:
            # Guessing a start could duplicate numbers already issued at DIAN
            raise ConfigurationError(f"Could not read last issued number from provider: {e}") from e

        if last_number:
            logger.info(f"[e-Invoicing Sequence] Provider reports last number {last_number} for {prefix!r}")
            return last_number + 1, range_end
        return 1, range_end

    # --- Operator Configuration ---

    def configure(
        self,
        tenant_id: Any,
        resolution_number: str,
        prefix: str,
        current_number: int | None = None,
        range_end: int | None = None,
    ) -> tuple[SequenceCounter, bool]:
        """
        Create or update a counter from the e-billing settings screen.

        ``current_number`` is the last number already issued. It may only
        move forward; lowering it would hand out numbers DIAN already holds.

        Returns:
            (counter, created)

        Raises:
            ConfigurationError: Missing resolution, or the counter would move backwards
        """
        if not resolution_number:
            raise ConfigurationError("No resolution number configured")

        key = {"tenant_id": tenant_id, "resolution_number": resolution_number, "prefix": prefix}
        with transaction.atomic():
            counter = SequenceCounter.objects.select_for_update().filter(**key).first()
            if counter is None:
                counter = SequenceCounter.objects.create(
                    **key, current_number=current_number or 0, range_end=range_end
                )
                logger.info(
                    f"[e-Invoicing Sequence] Created {prefix!r}/{resolution_number} for tenant {tenant_id} "
                    f"at {counter.current_number}"
                )
                return counter, True

            update_fields = ["updated_at"]
            if current_number is not None and current_number != counter.current_number:
                if current_number < counter.current_number:
                    raise ConfigurationError(
                        f"Sequence {prefix}{counter.current_number} cannot move back to {current_number}"
                    )
                counter.current_number = current_number
                update_fields.append("current_number")
            if range_end is not None:
                counter.range_end = range_end
                update_fields.append("range_end")
            counter.save(update_fields=update_fields)

        logger.info(f"[e-Invoicing Sequence] Updated {prefix!r}/{resolution_number} for tenant {tenant_id}")
        return counter, False


sequence_allocator = SequenceAllocator()


def next_number(tenant_id: Any, resolution_number: str, prefix: str) -> int:
    return sequence_allocator.next_number(tenant_id, resolution_number, prefix)
