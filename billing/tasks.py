"""
Celery tasks for billing.

Tasks:
    - send_bill_receipt: Async receipt rendering after a committed checkout
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


def render_receipt(summary: dict) -> str:
    """Plain-text receipt from a bill summary (billing.services.get_bill_summary)."""
    items = [
        f"  - {item['quantity']}x {item['product_name']} @ ${item['price']} = ${item['amount']}"
        for item in summary['items']
    ]
    return "\n".join([
        "===============================================",
        f"RECEIPT - {summary['reference']}",
        "===============================================",
        f"Customer: {summary['customer_name']}",
        f"Sold by: {summary['sold_by']}",
        f"Payment: {summary['payment_mode']}",
        "",
        "Items:",
        *items,
        "",
        f"Total: ${summary['total_amount']}",
        f"Date: {summary['created_at']}",
        "===============================================",
    ])


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    retry_backoff=True
)
def send_bill_receipt(self, bill_id: int):
    """
    Async task triggered after a checkout commits.

    In production this would hand the rendered receipt to a printer queue
    or an email/SMS gateway.

    Args:
        bill_id: ID of the committed bill

    Returns:
        Dict with receipt details
    """
    from billing.models import Bill
    from billing.services import get_bill_summary

    try:
        summary = get_bill_summary(bill_id)
    except Bill.DoesNotExist:
        logger.error(f"Bill #{bill_id} not found for receipt")
        return {'status': 'error', 'message': f'Bill {bill_id} not found'}

    receipt = render_receipt(summary)
    logger.info(f"[CELERY] Receipt for bill #{bill_id}\n{receipt}")

    return {
        'status': 'success',
        'bill_id': bill_id,
        'receipt': receipt,
    }
