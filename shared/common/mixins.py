# shared/common/mixins.py
"""
Reusable Model Mixins
"""

import uuid
from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Mixin that provides UUID as primary key instead of auto-increment integer.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record"
    )

    class Meta:
        abstract = True


class TimestampMixin(models.Model):
    """
    Mixin that provides created_at and updated_at timestamp fields.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When this record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When this record was last updated"
    )

    class Meta:
        abstract = True


class ImmutableFieldsMixin(models.Model):
    """
    Mixin that freezes ``immutable_fields`` once a row has been stored.

    The values loaded from the database are remembered in ``from_db`` and
    ``save`` refuses to write a changed value back.
    """

    immutable_fields = ()

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._stored_values = {
            name: getattr(instance, name)
            for name in cls.immutable_fields
            if name in field_names
        }
        return instance

    def save(self, *args, **kwargs):
        stored = getattr(self, '_stored_values', None)
        if stored:
            changed = [
                name for name, value in stored.items()
                if getattr(self, name) != value
            ]
            if changed:
                raise ValueError(
                    f"{type(self).__name__} fields are immutable after commit: {', '.join(changed)}"
                )
        super().save(*args, **kwargs)
