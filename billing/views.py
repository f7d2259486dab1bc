"""
Billing API Views.

Implements:
- GET /bills/ - List bills, newest first
- POST /bills/ - Checkout a cart into a bill, atomically
- GET /bills/{id}/ - Bill detail with lines
"""
import logging

from rest_framework import generics, status
from rest_framework.response import Response

from core.exceptions import (
    CartValidationError,
    ConcurrencyConflictError,
    InsufficientStockError,
    ProductNotFoundError,
    StorageError,
)
from .models import Bill
from .serializers import (
    BillSerializer,
    BillListSerializer,
    CheckoutSerializer,
)
from .services import checkout, list_bills

logger = logging.getLogger(__name__)


def stock_error_response(error):
    """
    Map a checkout failure to a specific, user-facing response.

    Returns None for errors that are not part of the checkout contract.
    """
    if isinstance(error, InsufficientStockError):
        return Response(
            {
                'error': 'Insufficient Stock',
                'detail': str(error),
                'product_id': error.product_id,
                'requested': error.requested,
                'available': error.available,
            },
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(error, ProductNotFoundError):
        return Response(
            {'error': 'Not Found', 'detail': str(error), 'product_id': error.product_id},
            status=status.HTTP_404_NOT_FOUND
        )
    if isinstance(error, CartValidationError):
        return Response(
            {'error': 'Validation Error', 'detail': str(error)},
            status=status.HTTP_400_BAD_REQUEST
        )
    if isinstance(error, ConcurrencyConflictError):
        return Response(
            {'error': 'Conflict', 'detail': str(error), 'retryable': True},
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(error, StorageError):
        return Response(
            {'error': 'Storage Error', 'detail': 'The sale could not be saved, nothing was charged'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    return None


class BillListCreateView(generics.ListCreateAPIView):
    """
    GET: List all bills, newest first
    POST: Checkout a cart with atomic transaction handling

    Request Body (POST):
    {
        "customer_name": "Jane Doe",
        "payment_mode": "Cash",
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 3, "quantity": 1}
        ]
    }
    """

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return CheckoutSerializer
        return BillListSerializer

    def get_queryset(self):
        return list_bills()

    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Bill committed
            - 400: Validation error or insufficient stock
            - 404: Unknown product
            - 409: Concurrent writes, safe to retry
        """
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            bill = checkout(
                [dict(item) for item in data['items']],
                request.user,
                customer_name=data['customer_name'],
                payment_mode=data['payment_mode'],
            )
        except (CartValidationError, InsufficientStockError, ProductNotFoundError,
                ConcurrencyConflictError) as e:
            logger.warning(f"Checkout failed: {e}")
            return stock_error_response(e)
        except StorageError as e:
            logger.exception(f"Storage failure during checkout: {e}")
            return stock_error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error during checkout: {e}")
            return Response(
                {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        bill = Bill.objects.select_related('sold_by').prefetch_related('lines').get(id=bill.id)
        return Response(BillSerializer(bill).data, status=status.HTTP_201_CREATED)


class BillDetailView(generics.RetrieveAPIView):
    """
    GET: Retrieve a bill with its lines.
    """
    serializer_class = BillSerializer

    def get_queryset(self):
        return list_bills()
