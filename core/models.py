# core/models.py

from decimal import Decimal

from django.db import models
from django.contrib.auth.models import AbstractUser
from django.conf import settings


# --- BUSINESS RULE CONSTANTS ---

PRICING_MODEL_CHOICES = (
    ('percentage', 'Percentage of revenue'),
    ('subscription', 'Flat subscription'),
)


# Custom user model (extends AbstractUser)
class CustomUser(AbstractUser):
    ROLE_CHOICES = (
        ('customer', 'Customer'),
        ('detailer', 'Detailer'),
        ('admin', 'Admin'),
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='customer')
    phone_number = models.CharField(max_length=15, blank=True, null=True)

    def __str__(self):
        return self.username


# Detailing businesses; their detailers are settled at organization level
class Organization(models.Model):
    name = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Detailer(models.Model):
    user = models.OneToOneField(
        CustomUser,
        on_delete=models.CASCADE,
        related_name='detailer_profile',
        null=True,
        blank=True,
    )
    display_name = models.CharField(max_length=200, blank=True)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.SET_NULL,
        related_name='detailers',
        null=True,
        blank=True,
    )

    # Payout destination (Stripe Connect account); blank means none configured
    stripe_connect_account_id = models.CharField(max_length=100, blank=True, default='')

    pricing_model = models.CharField(
        max_length=20,
        choices=PRICING_MODEL_CHOICES,
        default='percentage',
    )
    platform_fee_percentage_override = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.display_name or f"Detailer #{self.pk}"

    @property
    def is_solo(self) -> bool:
        return self.organization_id is None

    @property
    def payout_destination(self) -> str:
        return (self.stripe_connect_account_id or '').strip()


class Booking(models.Model):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    )

    customer = models.ForeignKey(
        CustomUser,
        on_delete=models.SET_NULL,
        related_name='bookings',
        null=True,
        blank=True,
    )
    detailer = models.ForeignKey(
        Detailer,
        on_delete=models.SET_NULL,
        related_name='bookings',
        null=True,
        blank=True,
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    # Detailer payout is based on service_price; total_amount also carries processing fees
    service_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='CAD')

    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Booking #{self.pk} ({self.status})"

    @property
    def gross_amount(self) -> Decimal:
        if self.service_price is not None:
            return self.service_price
        return self.total_amount or Decimal('0.00')


class PlatformSetting(models.Model):
    key = models.CharField(max_length=100, unique=True)
    value = models.CharField(max_length=255)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.key}={self.value}"


class WeeklyPayoutBatch(models.Model):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
    )

    detailer = models.ForeignKey(
        Detailer,
        on_delete=models.PROTECT,
        related_name='weekly_batches',
    )
    week_start_date = models.DateField()
    week_end_date = models.DateField()
    total_amount_cents = models.BigIntegerField(default=0)
    total_transfers = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default='cad')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='pending')
    stripe_transfer_id = models.CharField(max_length=100, null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status'], name='core_batch_status_idx'),
        ]

    def __str__(self):
        return f"Batch #{self.pk} detailer={self.detailer_id} {self.week_start_date}..{self.week_end_date}"


class DetailerTransfer(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_SUCCEEDED = 'succeeded'
    STATUS_FAILED = 'failed'
    STATUS_RETRY_PENDING = 'retry_pending'

    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_SUCCEEDED, 'Succeeded'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_RETRY_PENDING, 'Retry pending'),
    )

    booking = models.OneToOneField(
        Booking,
        on_delete=models.PROTECT,
        related_name='detailer_transfer',
    )
    detailer = models.ForeignKey(
        Detailer,
        on_delete=models.PROTECT,
        related_name='transfers',
    )
    amount_cents = models.BigIntegerField(default=0)
    platform_fee_cents = models.BigIntegerField(default=0)
    currency = models.CharField(max_length=3, default='cad')
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_PENDING)
    stripe_transfer_id = models.CharField(max_length=100, null=True, blank=True)
    weekly_payout_batch = models.ForeignKey(
        WeeklyPayoutBatch,
        on_delete=models.PROTECT,
        related_name='transfers',
        null=True,
        blank=True,
    )
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveIntegerField(default=0)

    # False once a structural problem (no destination, booking reverted...) froze the record
    retryable = models.BooleanField(default=True)

    last_attempt_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'retry_count'], name='core_transfer_retry_idx'),
            models.Index(fields=['status', 'created_at'], name='core_transfer_created_idx'),
        ]

    def __str__(self):
        return f"Transfer #{self.pk} booking={self.booking_id} {self.status}"

    @property
    def gross_amount_cents(self) -> int:
        return self.amount_cents + self.platform_fee_cents


# Notification model
class Notification(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    read = models.BooleanField(default=False)

    def __str__(self):
        return f"{self.user} - {self.message[:30]}"
