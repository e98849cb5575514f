# core/views.py

from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .exceptions import PayoutError
from .models import Booking, DetailerTransfer, WeeklyPayoutBatch
from .serializers import (
    DetailerTransferSerializer,
    PendingRunSerializer,
    ProcessTransferSerializer,
    WeeklyPayoutBatchSerializer,
)
from .services.reconciliation import sync_transfer_status
from .services.retries import retry_failed_transfers
from .services.transfers import process_detailer_transfer, process_pending_transfers, requeue_transfer
from .services.weekly_batches import run_weekly_payouts


def is_admin_user(user):
    """
    Return True if this user may use the payout tooling APIs.
    """
    return user.is_authenticated and (user.is_staff or getattr(user, 'role', '') == 'admin')


def _admin_required():
    return Response({'detail': 'Admin access required.'}, status=403)


def _paginated(request, queryset, serializer_class):
    paginator = PageNumberPagination()
    page = paginator.paginate_queryset(queryset, request)
    serializer = serializer_class(page, many=True)
    return paginator.get_paginated_response(serializer.data)


# -------------------
# TRANSFER DISPATCH
# -------------------

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def process_transfer(request):
    """
    POST /api/payouts/transfers/process/  {"booking_id": 123}
    Admin-only. Create and individually dispatch the transfer for a completed booking.
    """
    if not is_admin_user(request.user):
        return _admin_required()

    serializer = ProcessTransferSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    booking_id = serializer.validated_data['booking_id']

    try:
        result = process_detailer_transfer(booking_id)
    except Booking.DoesNotExist:
        return Response({'detail': 'Booking not found.'}, status=404)
    except PayoutError as e:
        return Response({'detail': str(e)}, status=400)

    return Response(result, status=200 if result.get('success') else 422)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def requeue(request, pk):
    """
    POST /api/payouts/transfers/<id>/requeue/
    Admin-only. Give a failed transfer a fresh retry budget.
    """
    if not is_admin_user(request.user):
        return _admin_required()

    try:
        transfer = DetailerTransfer.objects.get(pk=pk)
    except DetailerTransfer.DoesNotExist:
        return Response({'detail': 'Transfer not found.'}, status=404)

    if not requeue_transfer(transfer):
        return Response(
            {'detail': f'Only failed or retry_pending transfers can be requeued (status: {transfer.status}).'},
            status=409,
        )

    transfer.refresh_from_db()
    return Response(DetailerTransferSerializer(transfer).data)


# -------------------
# JOB TRIGGERS
# -------------------

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def run_weekly(request):
    if not is_admin_user(request.user):
        return _admin_required()
    return Response(run_weekly_payouts())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def run_retries(request):
    if not is_admin_user(request.user):
        return _admin_required()
    return Response(retry_failed_transfers())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def run_sync(request):
    if not is_admin_user(request.user):
        return _admin_required()
    return Response(sync_transfer_status())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def run_pending(request):
    if not is_admin_user(request.user):
        return _admin_required()

    serializer = PendingRunSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return Response(process_pending_transfers(limit=serializer.validated_data.get('limit')))


# -------------------
# LISTINGS
# -------------------

@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transfer_list(request):
    """
    GET /api/payouts/transfers/?status=failed&detailer=<id>
    """
    if not is_admin_user(request.user):
        return _admin_required()

    qs = DetailerTransfer.objects.select_related('detailer').order_by('-created_at')

    status = request.query_params.get('status')
    if status:
        valid = {choice for choice, _ in DetailerTransfer.STATUS_CHOICES}
        if status not in valid:
            return Response({'detail': f'Unknown status: {status}'}, status=400)
        qs = qs.filter(status=status)

    detailer_id = request.query_params.get('detailer')
    if detailer_id:
        if not detailer_id.isdigit():
            return Response({'detail': 'detailer must be an integer id.'}, status=400)
        qs = qs.filter(detailer_id=int(detailer_id))

    return _paginated(request, qs, DetailerTransferSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def batch_list(request):
    """
    GET /api/payouts/batches/?status=failed
    """
    if not is_admin_user(request.user):
        return _admin_required()

    qs = WeeklyPayoutBatch.objects.prefetch_related('transfers').order_by('-week_start_date', '-id')
    status = request.query_params.get('status')
    if status:
        qs = qs.filter(status=status)

    return _paginated(request, qs, WeeklyPayoutBatchSerializer)
