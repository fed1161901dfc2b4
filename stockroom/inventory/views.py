from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.conf import settings
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404
import logging
from .exceptions import InvalidArgument, StockLedgerError
from .models import InventoryTransaction
from .serializers import InventoryTransactionSerializer, InventoryTransactionCreateSerializer
from .services import apply_inventory_transaction
from stockroom.core.utils import create_audit_log

logger = logging.getLogger(__name__)


def ledger_error_response(error):
    """Render a StockLedgerError as {'error', 'code', ...context}"""
    body = {'error': error.message, 'code': error.code}
    body.update(error.context)
    return Response(body, status=error.status_code)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def transaction_list_create(request):
    """
    List ledger entries (newest first) or apply a stock movement

    GET query params:
        product_id: only this product's entries
        direction: IN or OUT
        page, limit: pagination (limit defaults to STOCK_LEDGER['TRANSACTIONS_PAGE_SIZE'])

    POST body:
        {"product_id": 1, "direction": "IN" | "OUT", "quantity": 5}
    """
    if request.method == 'GET':
        queryset = InventoryTransaction.objects.select_related('product', 'created_by').all()

        product_id = request.query_params.get('product_id')
        direction = request.query_params.get('direction')
        try:
            if product_id:
                product_id = int(product_id)
            page = int(request.query_params.get('page', 1))
            limit = int(request.query_params.get('limit', settings.STOCK_LEDGER['TRANSACTIONS_PAGE_SIZE']))
        except ValueError:
            return Response(
                {'error': 'product_id, page and limit must be integers', 'code': 'invalid_argument'},
                status=status.HTTP_400_BAD_REQUEST,
            )
        limit = max(1, min(limit, 500))

        if product_id:
            queryset = queryset.filter(product_id=product_id)
        if direction:
            queryset = queryset.filter(direction=direction.upper())

        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)
        serializer = InventoryTransactionSerializer(page_obj, many=True)
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page_obj.number,
            'page_size': limit,
            'total_pages': paginator.num_pages,
        })

    serializer = InventoryTransactionCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return ledger_error_response(InvalidArgument(fields=serializer.errors))

    data = serializer.validated_data
    try:
        result = apply_inventory_transaction(
            product_id=data['product_id'],
            direction=data['direction'],
            quantity=data['quantity'],
            user=request.user,
        )
    except StockLedgerError as e:
        return ledger_error_response(e)

    entry = result.transaction
    create_audit_log(
        request=request,
        action='stock_in' if entry.direction == InventoryTransaction.IN else 'stock_out',
        model_name='InventoryTransaction',
        object_id=entry.id,
        object_name=entry.product.name,
        changes={
            'product': entry.product_id,
            'direction': entry.direction,
            'quantity': entry.quantity,
            'new_quantity': result.new_quantity,
        },
    )

    return Response({
        'new_quantity': result.new_quantity,
        'transaction': InventoryTransactionSerializer(entry).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transaction_detail(request, pk):
    """Retrieve a ledger entry (entries are immutable)"""
    entry = get_object_or_404(InventoryTransaction.objects.select_related('product', 'created_by'), pk=pk)
    return Response(InventoryTransactionSerializer(entry).data)
