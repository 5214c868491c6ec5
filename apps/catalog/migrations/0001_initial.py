import django.core.validators
from django.db import migrations, models
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField()),
                ("price", models.PositiveIntegerField(help_text="Unit price in cents", validators=[django.core.validators.MinValueValidator(1)])),
                ("image_url", models.URLField(max_length=500)),
                ("category", models.CharField(choices=[("perfume", "Perfumes"), ("cologne", "Colognes"), ("gift-set", "Gift Sets"), ("candle", "Candles"), ("body-care", "Body Care")], db_index=True, max_length=20)),
                ("brand", models.CharField(max_length=255)),
                ("stock", models.PositiveIntegerField(default=0)),
                ("featured", models.BooleanField(db_index=True, default=False)),
            ],
            options={
                "db_table": "products",
                "ordering": ["-featured", "name"],
            },
        ),
    ]
