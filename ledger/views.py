"""
Ledger API Views (read-only).

Implements:
- GET /movements/ - Stock movement history with filters
- GET /products/{id}/movements/ - History of one product
"""
from django.utils.dateparse import parse_date
from rest_framework import generics
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.pagination import PageNumberPagination

from catalog.models import Product
from .models import MovementEntry
from .serializers import MovementEntrySerializer
from . import services
from .services import day_bounds


class MovementPagination(PageNumberPagination):
    page_size = 100
    page_size_query_param = 'page_size'
    max_page_size = 1000


def parse_date_range(params):
    """
    Read ``start`` / ``end`` (YYYY-MM-DD, both inclusive days) from query params
    and return aware [start, end) datetimes.
    """
    start = end = None
    raw_start = params.get('start')
    raw_end = params.get('end')
    if raw_start:
        day = parse_date(raw_start)
        if day is None:
            raise ValidationError({'start': 'Expected YYYY-MM-DD'})
        start, _ = day_bounds(day)
    if raw_end:
        day = parse_date(raw_end)
        if day is None:
            raise ValidationError({'end': 'Expected YYYY-MM-DD'})
        _, end = day_bounds(day)
    return start, end


def parse_direction(params, default=None):
    direction = params.get('direction', default)
    if direction in (None, '', 'ALL'):
        return None
    direction = direction.upper()
    if direction not in MovementEntry.Direction.values:
        raise ValidationError({'direction': 'Expected IN, OUT or ALL'})
    return direction


class MovementListView(generics.ListAPIView):
    """
    GET: Stock movements, oldest first.

    Query Parameters:
        - product_id: Filter by product
        - direction: IN or OUT
        - start / end: Date range (YYYY-MM-DD, inclusive)
    """
    serializer_class = MovementEntrySerializer
    pagination_class = MovementPagination

    def get_queryset(self):
        params = self.request.query_params
        start, end = parse_date_range(params)
        product_id = params.get('product_id') or None
        if product_id is not None and not product_id.isdigit():
            raise ValidationError({'product_id': 'Expected a product id'})
        return services.query(
            start=start,
            end=end,
            product=product_id,
            direction=parse_direction(params),
        )


class ProductMovementListView(generics.ListAPIView):
    """
    GET: Movement history of a single product, oldest first.
    """
    serializer_class = MovementEntrySerializer
    pagination_class = MovementPagination

    def get_queryset(self):
        if not Product.objects.filter(pk=self.kwargs['pk']).exists():
            raise NotFound(f"Product {self.kwargs['pk']} not found")
        return services.query(product=self.kwargs['pk'])
