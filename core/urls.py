# core/urls.py

from django.urls import path
from . import views

urlpatterns = [
    path('transfers/', views.transfer_list, name='payout_transfer_list'),
    path('transfers/process/', views.process_transfer, name='payout_process_transfer'),
    path('transfers/<int:pk>/requeue/', views.requeue, name='payout_requeue_transfer'),
    path('batches/', views.batch_list, name='payout_batch_list'),

    # Manual job triggers
    path('run/weekly/', views.run_weekly, name='payout_run_weekly'),
    path('run/retries/', views.run_retries, name='payout_run_retries'),
    path('run/sync/', views.run_sync, name='payout_run_sync'),
    path('run/pending/', views.run_pending, name='payout_run_pending'),
]
