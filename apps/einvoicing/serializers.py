# ===============================================================================
# E-INVOICING API SERIALIZERS - DOCUMENTS, SEQUENCES AND QUOTA 🏛️
# ===============================================================================

from decimal import Decimal
from typing import ClassVar

from rest_framework import serializers

from .models import DocumentFile, DocumentKind, DocumentQueueEntry, SequenceCounter, SourceType


class DocumentFileSerializer(serializers.ModelSerializer):
    """Stored provider artifact, without its content"""

    has_data = serializers.BooleanField(read_only=True)

    class Meta:
        model = DocumentFile
        fields: ClassVar = ["id", "kind", "mime_type", "has_data", "url", "created_at"]


class DocumentQueueEntrySerializer(serializers.ModelSerializer):
    """Document status for display; request/response bodies included for support"""

    full_number = serializers.CharField(read_only=True)
    is_terminal = serializers.BooleanField(read_only=True)
    files = DocumentFileSerializer(many=True, read_only=True)

    class Meta:
        model = DocumentQueueEntry
        fields: ClassVar = [
            "id",
            "tenant",
            "kind",
            "source_type",
            "source_id",
            "order_number",
            "resolution_number",
            "prefix",
            "document_number",
            "full_number",
            "status",
            "is_terminal",
            "retry_count",
            "max_retries",
            "track_id",
            "cufe",
            "qr_code",
            "last_error",
            "request_json",
            "response_json",
            "submitted_at",
            "accepted_at",
            "created_at",
            "updated_at",
            "files",
        ]
        read_only_fields = fields


class QuotaCheckSerializer(serializers.Serializer):
    """Result of a quota pre-flight check"""

    allowed = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    used = serializers.IntegerField()
    limit = serializers.IntegerField()
    remaining = serializers.IntegerField()
    overage_policy = serializers.CharField(allow_null=True)
    is_overage = serializers.BooleanField()


class SequenceCounterSerializer(serializers.ModelSerializer):
    """Numbering counter; ``current_number`` is the last number issued"""

    class Meta:
        model = SequenceCounter
        fields: ClassVar = ["id", "resolution_number", "prefix", "current_number", "range_end", "updated_at"]
        read_only_fields = fields


class SequenceConfigSerializer(serializers.Serializer):
    """Create or move a numbering counter"""

    resolution_number = serializers.CharField(max_length=50)
    prefix = serializers.CharField(max_length=10, allow_blank=True)
    current_number = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    range_end = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class EnqueueRequestSerializer(serializers.Serializer):
    """Manual enqueue of a document for an existing business record"""

    kind = serializers.ChoiceField(choices=DocumentKind.choices())
    source_type = serializers.ChoiceField(choices=SourceType.choices())
    source_id = serializers.CharField(max_length=64)
    order_number = serializers.CharField(max_length=40, required=False, allow_blank=True)
    submit_now = serializers.BooleanField(required=False, default=False)


class SupplierSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    id_number = serializers.CharField(max_length=30)
    id_type = serializers.CharField(max_length=30, required=False, default="cc")
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(max_length=300, required=False, allow_blank=True)
    city_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class SupportItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=300, required=False, allow_blank=True)
    code = serializers.CharField(max_length=60, required=False, allow_blank=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal("0.001"), default=1)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal("0"))
    tax_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal("0"), max_value=Decimal("100"), default=0
    )


class SupportDocumentRequestSerializer(serializers.Serializer):
    """Purchase from a non-invoicing supplier, issued as a support document"""

    supplier = SupplierSerializer()
    items = SupportItemSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    date = serializers.DateTimeField(required=False, allow_null=True)
