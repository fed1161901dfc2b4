from django.urls import path
from .views import transaction_list_create, transaction_detail

urlpatterns = [
    # Stock ledger endpoints
    path('transactions/', transaction_list_create, name='transaction-list-create'),
    path('transactions/<int:pk>/', transaction_detail, name='transaction-detail'),
]
