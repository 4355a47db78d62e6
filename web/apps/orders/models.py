import uuid
from django.db import models, transaction


class OrderNumberModel(models.Model):
    """Counter backing order numbers.

    Each insert draws the next value of the table's auto-increment key
    (an identity sequence on PostgreSQL, AUTOINCREMENT on SQLite). Values are
    never reused, and a rolled-back create leaves a gap.
    Rows are deleted right away; only the counter matters.
    """

    id = models.BigAutoField(primary_key=True)

    class Meta:
        db_table = "order_numbers"

    @classmethod
    def next_number(cls) -> int:
        with transaction.atomic():
            row = cls.objects.create()
            cls.objects.filter(pk=row.pk).delete()
        return row.pk


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Sequential order number, assigned on first save
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    class Status(models.TextChoices):
        PENDING = "PENDING"
        CONFIRMED = "CONFIRMED"
        PAYMENT_FAILED = "PAYMENT_FAILED"
        CANCELLED = "CANCELLED"

    class PaymentMethod(models.TextChoices):
        CREDIT_CARD = "CREDIT_CARD"
        DEBIT_CARD = "DEBIT_CARD"
        BANK_TRANSFER = "BANK_TRANSFER"

    member_id = models.CharField(max_length=64, db_index=True)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING)
    total_amount = models.DecimalField(max_digits=19, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=32, choices=PaymentMethod.choices)
    payment_transaction_id = models.CharField(max_length=64, null=True, blank=True)
    refund_transaction_id = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-internal_id"]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            self.internal_id = OrderNumberModel.next_number()
        super().save(*args, **kwargs)


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=19, decimal_places=4)
    subtotal = models.DecimalField(max_digits=19, decimal_places=2)

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
