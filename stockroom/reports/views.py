"""
Dashboard reporting views
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum
from django.db.models.functions import Coalesce
import logging
from stockroom.catalog.models import Category, Product
from stockroom.core.cache_utils import get_cached_dashboard_summary, cache_dashboard_summary

logger = logging.getLogger(__name__)

UNCATEGORIZED_LABEL = 'Uncategorized'


def build_dashboard_summary():
    """
    Counts plus on-hand stock, in total and grouped by category name.
    Products without a category are grouped under UNCATEGORIZED_LABEL.
    """
    total_stock = Product.objects.aggregate(total=Coalesce(Sum('quantity'), 0))['total']

    rows = (
        Product.objects.values('category__name')
        .annotate(value=Coalesce(Sum('quantity'), 0))
        .order_by('category__name')
    )
    stock_by_category = {}
    for row in rows:
        name = row['category__name'] or UNCATEGORIZED_LABEL
        # Distinct categories may share a name
        stock_by_category[name] = stock_by_category.get(name, 0) + row['value']

    return {
        'products': Product.objects.count(),
        'categories': Category.objects.count(),
        'total_stock': total_stock,
        'stock_by_category': [
            {'name': name, 'value': value} for name, value in stock_by_category.items()
        ],
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_summary(request):
    """Dashboard KPIs: product count, category count, total stock, stock per category"""
    cached_data = get_cached_dashboard_summary()
    if cached_data is not None:
        logger.info("Dashboard summary cache HIT")
        response = Response(cached_data)
        response['X-Cache'] = 'HIT'
        return response

    logger.info("Dashboard summary cache MISS")
    data = build_dashboard_summary()
    cache_dashboard_summary(data)
    response = Response(data)
    response['X-Cache'] = 'MISS'
    return response
