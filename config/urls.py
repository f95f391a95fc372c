"""
URL configuration for the Flowp e-invoicing platform.
"""

from django.contrib import admin
from django.urls import include, path

# ===============================================================================
# MAIN URL PATTERNS
# ===============================================================================

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/einvoicing/", include("apps.einvoicing.urls")),
]
