# core/serializers.py

from rest_framework import serializers

from .models import DetailerTransfer, WeeklyPayoutBatch


class DetailerTransferSerializer(serializers.ModelSerializer):
    gross_amount_cents = serializers.IntegerField(read_only=True)
    detailer_name = serializers.SerializerMethodField()

    class Meta:
        model = DetailerTransfer
        fields = [
            'id',
            'booking',
            'detailer',
            'detailer_name',
            'amount_cents',
            'platform_fee_cents',
            'gross_amount_cents',
            'currency',
            'status',
            'stripe_transfer_id',
            'weekly_payout_batch',
            'error_message',
            'retry_count',
            'retryable',
            'last_attempt_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_detailer_name(self, obj):
        return str(obj.detailer)


class WeeklyPayoutBatchSerializer(serializers.ModelSerializer):
    transfer_ids = serializers.PrimaryKeyRelatedField(source='transfers', many=True, read_only=True)

    class Meta:
        model = WeeklyPayoutBatch
        fields = [
            'id',
            'detailer',
            'week_start_date',
            'week_end_date',
            'total_amount_cents',
            'total_transfers',
            'currency',
            'status',
            'stripe_transfer_id',
            'error_message',
            'processed_at',
            'transfer_ids',
            'created_at',
        ]
        read_only_fields = fields


class ProcessTransferSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)


class PendingRunSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=500, required=False)
