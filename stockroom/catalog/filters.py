import django_filters
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Product list filter: name search plus category"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    # Accepts a category id or 'all'
    category = django_filters.CharFilter(method='filter_category', label='Category')

    class Meta:
        model = Product
        fields = ['search', 'category']

    def filter_search(self, queryset, name, value):
        """Case-insensitive substring match on the product name"""
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(name__icontains=value)

    def filter_category(self, queryset, name, value):
        value = (value or '').strip().lower()
        if not value or value == 'all':
            return queryset
        if value in ('none', 'uncategorized'):
            return queryset.filter(category__isnull=True)
        try:
            category_id = int(value)
        except ValueError:
            return queryset.none()
        return queryset.filter(category_id=category_id)
