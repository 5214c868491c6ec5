from django.db import models
from django.conf import settings
from apps.utils.models import TimestampedModel


class Order(TimestampedModel):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    # Forward-only moves; completed/cancelled have no exits.
    TRANSITIONS = {
        Status.PENDING: {Status.PROCESSING, Status.COMPLETED, Status.CANCELLED},
        Status.PROCESSING: {Status.COMPLETED, Status.CANCELLED},
        Status.COMPLETED: set(),
        Status.CANCELLED: set(),
    }

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='orders',
    )
    email = models.EmailField()

    # Cents, computed server-side from catalog prices at checkout
    total_amount = models.PositiveIntegerField()

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)

    # Payment processor references
    checkout_session_id = models.CharField(max_length=255, blank=True, null=True, db_index=True)
    payment_intent_id = models.CharField(max_length=255, blank=True, null=True, db_index=True)

    # Snapshot of the validated address
    shipping_address = models.JSONField()

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.id} [{self.status}]"

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, set())
