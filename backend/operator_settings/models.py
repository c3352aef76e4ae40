from django.conf import settings
from django.db import models


class DbSetting(models.Model):
    """
    Operator override for a Django setting, read through core.settings_resolver.

    Rows are never edited in place by the resolver; the newest row already in
    effect for a key wins, so a change can be scheduled with ``effective_at``.
    """

    class ValueType(models.TextChoices):
        DECIMAL = "decimal", "decimal"
        INT = "int", "int"
        STR = "str", "str"

    key = models.CharField(max_length=128, db_index=True)
    value_json = models.JSONField()
    value_type = models.CharField(
        max_length=16,
        choices=ValueType.choices,
        default=ValueType.DECIMAL,
    )
    description = models.TextField(blank=True, default="")
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="db_settings_updated",
    )
    updated_at = models.DateTimeField(auto_now=True)
    effective_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=["key", "effective_at", "updated_at"], name="dbsetting_key_eff_upd_idx"),
        ]
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return f"{self.key} ({self.value_type})"
