"""
Catalog API Views.

Implements:
- CRUD operations for Category and Product (writes are admin-only)
- Product search with keyword and filter support
- Autocomplete with rate limiting
- Restock (admin-only), recorded in the stock ledger
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db.models import ProtectedError, Q
from rest_framework import generics, status
from rest_framework.permissions import SAFE_METHODS, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    ConcurrencyConflictError,
    InvalidQuantityError,
    ProductNotFoundError,
    StorageError,
)
from core.rate_limiting import rate_limit
from .models import Category, Product
from .serializers import (
    CategorySerializer,
    ProductSerializer,
    ProductSearchSerializer,
    RestockSerializer,
)
from .services import restock

logger = logging.getLogger(__name__)


def _price_param(params, name):
    try:
        value = Decimal(params.get(name, ''))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


class AdminWriteMixin:
    """Any authenticated user may read; only staff may write."""

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [IsAuthenticated()]
        return [IsAdminUser()]


class ProtectedDestroyMixin:
    """Refuse deletes that would orphan bill or ledger history."""

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        try:
            instance.delete()
        except ProtectedError:
            return Response(
                {
                    'error': 'Conflict',
                    'detail': f'{instance} has stock history and cannot be deleted'
                },
                status=status.HTTP_409_CONFLICT
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Category Views
# =============================================================================

class CategoryListCreateView(AdminWriteMixin, generics.ListCreateAPIView):
    """
    GET: List all categories
    POST: Create a new category
    """
    queryset = Category.objects.all()
    serializer_class = CategorySerializer


class CategoryDetailView(AdminWriteMixin, ProtectedDestroyMixin, generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a category
    PUT/PATCH: Update a category
    DELETE: Delete a category without products
    """
    queryset = Category.objects.all()
    serializer_class = CategorySerializer


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(AdminWriteMixin, generics.ListCreateAPIView):
    """
    GET: List all products with category info
    POST: Create a new product

    Uses select_related to eliminate N+1 queries.
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.select_related('category')


class ProductDetailView(AdminWriteMixin, ProtectedDestroyMixin, generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a product
    PUT/PATCH: Update a product (quantity is not editable)
    DELETE: Delete a product with no bill or ledger history
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.select_related('category')


class ProductSearchView(generics.ListAPIView):
    """
    GET: Search products with keyword and filters.

    Query Parameters:
        - q: Keyword to search in name, supplier, and category name
        - category_id: Filter by category ID
        - min_price: Minimum price filter
        - max_price: Maximum price filter
        - in_stock: Only products with quantity > 0 (true/false)
    """
    serializer_class = ProductSearchSerializer

    def get_queryset(self):
        queryset = Product.objects.select_related('category')
        params = self.request.query_params

        keyword = params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(
                Q(name__icontains=keyword) |
                Q(supplier__icontains=keyword) |
                Q(category__name__icontains=keyword)
            )

        category_id = params.get('category_id', '')
        if category_id.isdigit():
            queryset = queryset.filter(category_id=category_id)

        # Unparseable bounds are ignored
        min_price = _price_param(params, 'min_price')
        if min_price is not None:
            queryset = queryset.filter(price__gte=min_price)

        max_price = _price_param(params, 'max_price')
        if max_price is not None:
            queryset = queryset.filter(price__lte=max_price)

        if params.get('in_stock', '').lower() == 'true':
            queryset = queryset.filter(quantity__gt=0)

        return queryset.order_by('name')


class ProductAutocompleteView(APIView):
    """
    GET: Fast prefix-matching autocomplete for product names.

    Query Parameters:
        - q: Search query (minimum 2 characters)

    Returns top 10 matching products.
    Rate limited to 20 requests per minute.
    """

    @rate_limit(max_requests=20, window_seconds=60)
    def get(self, request):
        query = request.query_params.get('q', '').strip()

        if len(query) < 2:
            return Response(
                {'error': 'Query must be at least 2 characters'},
                status=status.HTTP_400_BAD_REQUEST
            )

        products = Product.objects.filter(
            name__istartswith=query
        ).order_by('name').values('id', 'name', 'price', 'quantity')[:10]

        return Response(list(products))


class ProductRestockView(APIView):
    """
    POST: Add stock to a product and record an IN ledger entry.

    Request Body:
    {
        "quantity": 20,
        "remark": "Supplier delivery"   (optional, default "Manual Restock")
    }
    """
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        serializer = RestockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            product = restock(
                pk,
                serializer.validated_data['quantity'],
                request.user,
                remark=serializer.validated_data['remark'],
            )
        except ProductNotFoundError as e:
            return Response(
                {'error': 'Not Found', 'detail': str(e)},
                status=status.HTTP_404_NOT_FOUND
            )
        except InvalidQuantityError as e:
            return Response(
                {'error': 'Validation Error', 'detail': str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )
        except ConcurrencyConflictError as e:
            logger.warning(f"Restock of product {pk} abandoned: {e}")
            return Response(
                {'error': 'Conflict', 'detail': str(e), 'retryable': True},
                status=status.HTTP_409_CONFLICT
            )
        except StorageError:
            logger.exception(f"Storage failure restocking product {pk}")
            return Response(
                {'error': 'Storage Error', 'detail': 'Stock could not be saved, nothing was changed'},
                status=status.HTTP_503_SERVICE_UNAVAILABLE
            )

        return Response(ProductSerializer(product).data)
