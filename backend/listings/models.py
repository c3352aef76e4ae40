from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.text import slugify


class Listing(models.Model):
    class PriceUnit(models.TextChoices):
        DAY = "giorno", "Giorno"
        WEEK = "settimana", "Settimana"
        MONTH = "mese", "Mese"

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
        help_text="Hubber offering the item or space.",
    )
    title = models.CharField(max_length=140)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    price_unit = models.CharField(
        max_length=16,
        choices=PriceUnit.choices,
        default=PriceUnit.DAY,
    )
    city = models.CharField(max_length=60, blank=True, default="")
    is_active = models.BooleanField(default=True)
    slug = models.SlugField(max_length=180, unique=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def clean(self):
        if not self.title or len(self.title.strip()) < 3:
            raise ValidationError("Title too short")
        if self.price and self.price > 10000:
            raise ValidationError("Unreasonable price")

    def save(self, *args, **kwargs):
        if not self.slug:
            base = slugify(self.title)[:120] or "listing"
            count = type(self).objects.count() + 1
            self.slug = f"{base}-{self.owner_id or 'u'}-{count}"
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.title} ({self.slug})"
