import django.db.models.deletion
import uuid6
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("products", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StockLedgerEntry",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("reserved", "Reserved"),
                            ("unreserved", "Unreserved"),
                            ("deducted", "Deducted"),
                            ("refunded", "Refunded"),
                        ],
                        max_length=20,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                ("order_ref", models.CharField(max_length=64)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("stock_remaining_after", models.PositiveIntegerField()),
                ("stock_reserved_after", models.PositiveIntegerField()),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_history",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "db_table": "stock_ledger_entries",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(
                        fields=["product", "-created_at"],
                        name="ledger_product_created_idx",
                    ),
                    models.Index(
                        fields=["order_ref", "action"],
                        name="ledger_ref_action_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(quantity__gte=1),
                        name="ledger_quantity_positive",
                    ),
                ],
            },
        ),
    ]
