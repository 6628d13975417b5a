import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                (
                    "booking_type",
                    models.CharField(
                        choices=[
                            ("hotel", "Hotel"),
                            ("vacation_rental", "Vacation rental"),
                            ("resort", "Resort"),
                            ("hostel", "Hostel"),
                            ("bnb", "Bed & breakfast"),
                            ("event", "Event"),
                            ("concert", "Concert"),
                            ("sports", "Sports"),
                            ("theater", "Theater"),
                            ("flight", "Flight"),
                            ("rental", "Rental"),
                        ],
                        max_length=32,
                    ),
                ),
                ("city", models.CharField(max_length=120)),
                ("country", models.CharField(max_length=120)),
                ("check_in", models.DateField(blank=True, null=True)),
                ("check_out", models.DateField(blank=True, null=True)),
                ("event_date", models.DateField(blank=True, null=True)),
                ("original_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("swap_value", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("capacity", models.PositiveSmallIntegerField(default=1)),
                ("amenities", models.JSONField(blank=True, default=list)),
                (
                    "status",
                    models.CharField(
                        choices=[("available", "Available"), ("swapped", "Swapped"), ("removed", "Removed")],
                        default="available",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="listed_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner", "status"], name="booking_owner_status_idx"),
                    models.Index(fields=["booking_type", "city"], name="booking_type_city_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("check_in__isnull", True), ("check_out__isnull", True)),
                            ("check_out__gt", models.F("check_in")),
                            _connector="OR",
                        ),
                        name="booking_valid_stay_dates",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("check_in__isnull", False), ("event_date__isnull", False), _connector="OR"),
                        name="booking_has_date",
                    ),
                ],
            },
        ),
    ]
