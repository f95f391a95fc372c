# ===============================================================================
# PYTEST CONFIGURATION FOR THE FLOWP E-INVOICING PLATFORM
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- tests/factories/ holds plain factory functions shared across test modules
- Naming convention: test_{feature}.py

Test Discovery:
- Run e-invoicing tests: pytest tests/einvoicing/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")

    # Configure Django
    django.setup()


# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import pytest  # noqa: E402
from django.contrib.auth import get_user_model  # noqa: E402

User = get_user_model()


@pytest.fixture
def staff_user():
    """Create staff user for operator endpoints"""
    return User.objects.create_user(
        username="operator",
        email="operator@flowp.test",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture
def tenant():
    """Create a tenant charging 19% VAT"""
    from tests.factories.einvoicing_factories import create_tenant  # noqa: PLC0415

    return create_tenant()
