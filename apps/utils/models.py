from django.db import models
import uuid


class TimestampedModel(models.Model):
    """
    Common UUID primary key and timestamps for storefront models.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
