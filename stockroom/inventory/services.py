"""
Stock ledger service

Applies one stock movement as a single unit of work: the product row is
locked, the OUT precondition is checked, the quantity is updated with a
compare-and-set on the value that was read, and the ledger row is written.
All of it commits or rolls back together.
"""
import logging
from collections import namedtuple

from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import Q, Sum
from django.utils import timezone

from stockroom.catalog.models import Product
from .exceptions import Conflict, InsufficientStock, InvalidArgument, NotFound
from .models import InventoryTransaction

logger = logging.getLogger(__name__)

LedgerResult = namedtuple('LedgerResult', ['transaction', 'new_quantity'])


def normalize_direction(direction):
    """Return 'IN' or 'OUT', raising InvalidArgument for anything else"""
    value = str(direction or '').strip().upper()
    if value not in (InventoryTransaction.IN, InventoryTransaction.OUT):
        raise InvalidArgument(f"Direction must be 'IN' or 'OUT', got {direction!r}.", field='direction')
    return value


def validate_quantity(quantity):
    # bool is an int subclass
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(f"Quantity must be an integer, got {quantity!r}.", field='quantity')
    if quantity <= 0:
        raise InvalidArgument(f"Quantity must be greater than 0, got {quantity}.", field='quantity')
    return quantity


def _load_product(product_id):
    try:
        return Product.objects.select_for_update().get(pk=product_id)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Product {product_id} does not exist.", product_id=product_id)


def _apply_once(product_id, direction, quantity, user):
    with transaction.atomic():
        product = _load_product(product_id)
        observed = product.quantity

        if direction == InventoryTransaction.OUT and observed < quantity:
            raise InsufficientStock(
                f"Insufficient stock for {product.name}: {observed} on hand, {quantity} requested.",
                product_id=product.pk,
                available=observed,
                requested=quantity,
            )

        new_quantity = observed + quantity if direction == InventoryTransaction.IN else observed - quantity

        # Compare-and-set against the value the precondition was checked on
        updated = Product.objects.filter(pk=product.pk, quantity=observed).update(
            quantity=new_quantity,
            updated_at=timezone.now(),
        )
        if updated != 1:
            raise Conflict(
                f"Stock for product {product.pk} changed while applying the movement.",
                product_id=product.pk,
            )

        entry = InventoryTransaction.objects.create(
            product=product,
            direction=direction,
            quantity=quantity,
            quantity_after=new_quantity,
            created_by=user if user is not None and user.is_authenticated else None,
        )

    return LedgerResult(transaction=entry, new_quantity=new_quantity)


def apply_inventory_transaction(product_id, direction, quantity, user=None, max_retries=None):
    """
    Record a directional stock movement and adjust the product quantity.

    Args:
        product_id: primary key of an existing product
        direction: 'IN' or 'OUT' (case-insensitive)
        quantity: positive integer
        user: optional user recorded as the author of the ledger row
        max_retries: how many times a lost compare-and-set or a locked row
            is retried,
            defaults to settings.STOCK_LEDGER['MAX_RETRIES']

    Returns:
        LedgerResult(transaction, new_quantity)

    Raises:
        InvalidArgument, NotFound, InsufficientStock, Conflict
    """
    direction = normalize_direction(direction)
    quantity = validate_quantity(quantity)
    if max_retries is None:
        max_retries = settings.STOCK_LEDGER['MAX_RETRIES']

    attempt = 0
    while True:
        try:
            try:
                result = _apply_once(product_id, direction, quantity, user)
            except OperationalError as e:
                # SQLite reports a held write lock instead of waiting on the row
                raise Conflict(
                    f"Product {product_id} is locked by another writer.",
                    product_id=product_id,
                ) from e
        except Conflict:
            attempt += 1
            if attempt > max_retries:
                logger.warning(
                    f"Giving up on {direction} {quantity} for product {product_id} "
                    f"after {attempt} conflicting attempt(s)"
                )
                raise
            logger.info(f"Conflict on product {product_id}, retrying ({attempt}/{max_retries})")
            continue
        except (InsufficientStock, NotFound) as e:
            logger.warning(f"Rejected {direction} {quantity} for product {product_id}: {e}")
            raise

        logger.info(
            f"Applied {direction} {quantity} to product {product_id}: "
            f"new quantity {result.new_quantity} (transaction {result.transaction.pk})"
        )
        return result


def ledger_balance(product):
    """opening_quantity + sum(IN) - sum(OUT) for the product"""
    totals = InventoryTransaction.objects.filter(product=product).aggregate(
        stock_in=Sum('quantity', filter=Q(direction=InventoryTransaction.IN)),
        stock_out=Sum('quantity', filter=Q(direction=InventoryTransaction.OUT)),
    )
    return product.opening_quantity + (totals['stock_in'] or 0) - (totals['stock_out'] or 0)
