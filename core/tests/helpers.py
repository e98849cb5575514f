# core/tests/helpers.py

from decimal import Decimal
from itertools import count

from django.contrib.auth import get_user_model

from core.models import Booking, Detailer, DetailerTransfer, Organization

_seq = count(1)


def make_user(**kwargs):
    n = next(_seq)
    defaults = {'username': f'user{n}', 'email': f'user{n}@example.com'}
    defaults.update(kwargs)
    return get_user_model().objects.create(**defaults)


def make_staff(**kwargs):
    return make_user(is_staff=True, role='admin', **kwargs)


def make_detailer(account='acct_123', pricing_model='percentage', organization=None, override=None, with_user=True):
    return Detailer.objects.create(
        user=make_user(role='detailer') if with_user else None,
        display_name=f'Detailer {next(_seq)}',
        stripe_connect_account_id=account,
        pricing_model=pricing_model,
        organization=organization,
        platform_fee_percentage_override=override,
    )


def make_organization(name='Shine Co'):
    return Organization.objects.create(name=name)


def make_booking(detailer, price='100.00', status='completed'):
    return Booking.objects.create(
        detailer=detailer,
        status=status,
        service_price=Decimal(price),
        total_amount=Decimal(price),
    )


def make_transfer(detailer, amount_cents=8500, status=DetailerTransfer.STATUS_PENDING, created_at=None, **kwargs):
    booking = kwargs.pop('booking', None) or make_booking(detailer)
    transfer = DetailerTransfer.objects.create(
        booking=booking,
        detailer=detailer,
        amount_cents=amount_cents,
        platform_fee_cents=kwargs.pop('platform_fee_cents', 1500),
        status=status,
        **kwargs,
    )
    if created_at is not None:
        # auto_now_add ignores explicit values on create
        DetailerTransfer.objects.filter(pk=transfer.pk).update(created_at=created_at)
        transfer.refresh_from_db()
    return transfer
