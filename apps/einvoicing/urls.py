# ===============================================================================
# E-INVOICING API URLS 🏛️
# ===============================================================================

from django.urls import path

from . import views

app_name = "einvoicing"

urlpatterns = [
    # Queue operations
    path("documents/process-pending/", views.process_pending_api, name="process_pending"),
    # Document endpoints
    path("documents/", views.documents_api, name="documents"),
    path("documents/<uuid:document_id>/", views.document_detail_api, name="document_detail"),
    path("documents/<uuid:document_id>/retry/", views.document_retry_api, name="document_retry"),
    path("documents/<uuid:document_id>/files/<str:kind>/", views.document_file_api, name="document_file"),
    path("support-documents/", views.support_document_api, name="support_documents"),
    # Numbering
    path("sequences/", views.sequences_api, name="sequences"),
    # Provider operations
    path("status/<str:track_id>/", views.track_status_api, name="track_status"),
    path("test-connection/", views.connection_check_api, name="test_connection"),
    # Dashboard and quota
    path("summary/", views.summary_api, name="summary"),
    path("quota/", views.tenant_quota_api, name="tenant_quota"),
]
