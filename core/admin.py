# core/admin.py

from django.contrib import admin

from .models import (
    Booking,
    CustomUser,
    Detailer,
    DetailerTransfer,
    Notification,
    Organization,
    PlatformSetting,
    WeeklyPayoutBatch,
)
from .services.transfers import requeue_transfer


@admin.register(DetailerTransfer)
class DetailerTransferAdmin(admin.ModelAdmin):
    list_display = (
        'id',
        'booking',
        'detailer',
        'amount_cents',
        'platform_fee_cents',
        'currency',
        'status',
        'retry_count',
        'retryable',
        'weekly_payout_batch',
        'stripe_transfer_id',
        'updated_at',
    )
    list_filter = (
        'status',
        'retryable',
        'currency',
    )
    search_fields = (
        'id',
        'booking__id',
        'stripe_transfer_id',
        'detailer__display_name',
    )
    readonly_fields = (
        'booking',
        'detailer',
        'amount_cents',
        'platform_fee_cents',
        'stripe_transfer_id',
        'weekly_payout_batch',
        'retry_count',
        'last_attempt_at',
        'created_at',
        'updated_at',
    )
    actions = ['requeue_selected']

    def requeue_selected(self, request, queryset):
        """
        Admin action: give failed transfers a fresh retry budget.
        """
        count = sum(1 for t in queryset if requeue_transfer(t))
        skipped = queryset.count() - count
        self.message_user(
            request,
            f"Requeued {count} transfer(s); {skipped} skipped (only failed / retry pending can be requeued). "
            "They will be retried on the next retry run."
        )

    requeue_selected.short_description = "Requeue selected transfers for retry"


@admin.register(WeeklyPayoutBatch)
class WeeklyPayoutBatchAdmin(admin.ModelAdmin):
    list_display = (
        'id',
        'detailer',
        'week_start_date',
        'week_end_date',
        'total_amount_cents',
        'total_transfers',
        'status',
        'stripe_transfer_id',
        'processed_at',
    )
    list_filter = ('status', 'week_start_date')
    search_fields = ('id', 'stripe_transfer_id', 'detailer__display_name')


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('id', 'customer', 'detailer', 'status', 'service_price', 'total_amount', 'completed_at')
    list_filter = ('status',)
    search_fields = ('id', 'customer__username', 'detailer__display_name')


@admin.register(Detailer)
class DetailerAdmin(admin.ModelAdmin):
    list_display = (
        'id',
        'display_name',
        'organization',
        'pricing_model',
        'platform_fee_percentage_override',
        'stripe_connect_account_id',
    )
    list_filter = ('pricing_model',)
    search_fields = ('display_name', 'user__username', 'stripe_connect_account_id')


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'created_at')
    search_fields = ('name',)


@admin.register(PlatformSetting)
class PlatformSettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'value', 'updated_at')
    search_fields = ('key',)


@admin.register(CustomUser)
class CustomUserAdmin(admin.ModelAdmin):
    list_display = (
        'id',
        'username',
        'email',
        'phone_number',
        'role',
        'is_active',
        'is_staff',
    )
    list_filter = ('role', 'is_active', 'is_staff')
    search_fields = ('username', 'email', 'phone_number')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'message', 'read', 'created_at')
    list_filter = ('read',)
    search_fields = ('user__username', 'message')
