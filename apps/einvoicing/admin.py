"""
Django Admin configuration for the e-Invoicing app.

Queue rows, counters and usage are written only by the engine; the admin is
read-only apart from the provider configuration and the retry action.
"""

from django.contrib import admin, messages

from .models import (
    DocumentFile,
    DocumentQueueEntry,
    ProviderConfig,
    SequenceCounter,
    SupportPurchase,
    SupportPurchaseLine,
    UsagePeriod,
)
from .queue import retry_document


class ReadOnlyAdminMixin:
    """Block add/change/delete from the admin."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ===============================================================================
# Inline Admin Classes
# ===============================================================================


class DocumentFileInline(admin.TabularInline):
    """Stored artifacts of a document (content not shown)."""

    model = DocumentFile
    extra = 0
    fields = ("kind", "mime_type", "url", "created_at")
    readonly_fields = fields
    can_delete = False
    max_num = 0


class SupportPurchaseLineInline(admin.TabularInline):
    model = SupportPurchaseLine
    extra = 0
    fields = ("description", "code", "quantity", "unit_price", "tax_percent")
    readonly_fields = fields
    can_delete = False
    max_num = 0


# ===============================================================================
# Model Admin Classes
# ===============================================================================


@admin.register(DocumentQueueEntry)
class DocumentQueueEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "full_number",
        "kind",
        "tenant",
        "status",
        "retry_count",
        "order_number",
        "created_at",
        "accepted_at",
    )
    list_filter = ("status", "kind", "source_type", "created_at")
    search_fields = ("prefix", "order_number", "source_id", "cufe", "track_id")
    date_hierarchy = "created_at"
    inlines = [DocumentFileInline]
    actions = ["retry_selected"]

    @admin.action(description="Retry selected documents")
    def retry_selected(self, request, queryset):
        reset = sum(1 for document_id in queryset.values_list("id", flat=True) if retry_document(document_id))
        skipped = queryset.count() - reset
        self.message_user(request, f"{reset} document(s) reset to PENDING", messages.SUCCESS)
        if skipped:
            self.message_user(request, f"{skipped} document(s) not in a retryable status", messages.WARNING)


@admin.register(SequenceCounter)
class SequenceCounterAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("tenant", "resolution_number", "prefix", "current_number", "range_end", "updated_at")
    search_fields = ("resolution_number", "prefix")


@admin.register(UsagePeriod)
class UsagePeriodAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "tenant",
        "period_start",
        "used_pos",
        "used_invoice",
        "used_notes",
        "used_support_docs",
        "used_total",
    )
    list_filter = ("period_start",)


@admin.register(SupportPurchase)
class SupportPurchaseAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("supplier_name", "supplier_id_number", "tenant", "issued_at")
    search_fields = ("supplier_name", "supplier_id_number")
    date_hierarchy = "issued_at"
    inlines = [SupportPurchaseLineInline]


@admin.register(ProviderConfig)
class ProviderConfigAdmin(admin.ModelAdmin):
    list_display = ("tenant", "email", "default_prefix", "default_resolution_number", "is_enabled")
    list_filter = ("is_enabled",)
    exclude = ("password_encrypted", "access_token_encrypted")
    readonly_fields = ("token_expires_at", "created_at", "updated_at")

    fieldsets = (
        (None, {"fields": ("tenant", "is_enabled", "auto_submit_sales")}),
        ("Provider account", {"fields": ("base_url", "email", "token_expires_at")}),
        (
            "Numbering",
            {
                "fields": (
                    "default_resolution_number",
                    "default_prefix",
                    "starting_number",
                    "ending_number",
                    "credit_note_resolution_number",
                    "credit_note_prefix",
                )
            },
        ),
        (
            "POS terminal",
            {
                "fields": ("pos_terminal_number", "pos_sales_code", "pos_cashier_type", "pos_address"),
                "classes": ("collapse",),
            },
        ),
        (
            "Software",
            {
                "fields": ("software_id", "software_pin", "manufacturer_name", "manufacturer_nit"),
                "classes": ("collapse",),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )
