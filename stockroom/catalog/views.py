from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
import logging
from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer
from .filters import ProductFilter
from stockroom.core.utils import create_audit_log

logger = logging.getLogger(__name__)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.all()
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)
    else:
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='Category',
                object_id=category.id,
                object_name=category.name,
                changes={'name': category.name},
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        old_name = category.name
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Category',
                object_id=category.id,
                object_name=category.name,
                changes={'name': {'old': old_name, 'new': category.name}},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        # Restricted: a category in use by products is not deleted
        try:
            category.delete()
        except ProtectedError:
            in_use = category.products.count()
            logger.info(f"Refused to delete category {pk}: {in_use} product(s) still reference it")
            return Response({
                'error': f'Category "{category.name}" is used by {in_use} product(s). Move or delete them first.',
                'code': 'category_in_use',
                'products_count': in_use,
            }, status=status.HTTP_409_CONFLICT)
        create_audit_log(
            request=request,
            action='delete',
            model_name='Category',
            object_id=pk,
            object_name=category.name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """
    List products or create a new product

    Query params:
        search: case-insensitive substring of the product name
        category: category id, 'all' or 'uncategorized'
    """
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').all()
        filterset = ProductFilter(request.query_params, queryset=queryset)
        serializer = ProductSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            product = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='Product',
                object_id=product.id,
                object_name=product.name,
                changes={
                    'category': product.category_id,
                    'price': str(product.price),
                    'quantity': product.quantity,
                },
            )
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            changes = {key: str(value) for key, value in serializer.validated_data.items()}
            if serializer.quantity_delta:
                changes['quantity_delta'] = serializer.quantity_delta
            create_audit_log(
                request=request,
                action='stock_rebase' if serializer.quantity_delta else 'update',
                model_name='Product',
                object_id=product.id,
                object_name=product.name,
                changes=changes,
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        name = product.name
        product.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=pk,
            object_name=name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
