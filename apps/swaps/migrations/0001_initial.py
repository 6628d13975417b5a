import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Swap",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("accepts_booking_exchange", models.BooleanField(default=True)),
                ("accepts_cash", models.BooleanField(default=False)),
                ("minimum_cash_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("preferred_cash_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("currency", models.CharField(default="USD", max_length=3)),
                (
                    "acceptance_strategy",
                    models.CharField(
                        choices=[("first_match", "First match"), ("auction", "Auction")],
                        default="first_match",
                        max_length=16,
                    ),
                ),
                ("auto_select_highest", models.BooleanField(default=False)),
                ("preferences", models.JSONField(blank=True, default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("accepted", "Accepted"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                            ("completed", "Completed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("expires_at", models.DateTimeField()),
                ("proposed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_proposal_id", models.UUIDField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="swaps",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "source_booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="swaps",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "expires_at"], name="swap_status_expiry_idx"),
                    models.Index(fields=["owner", "status"], name="swap_owner_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("accepts_booking_exchange", True), ("accepts_cash", True), _connector="OR"),
                        name="swap_accepts_some_payment",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SwapAuction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("end_date", models.DateTimeField()),
                ("allow_booking_proposals", models.BooleanField(default=True)),
                ("allow_cash_proposals", models.BooleanField(default=True)),
                ("minimum_cash_offer", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("auto_select_after_hours", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("ended", "Ended")],
                        default="active",
                        max_length=8,
                    ),
                ),
                ("winner_proposal_id", models.UUIDField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "swap",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="auction",
                        to="swaps.swap",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "end_date"], name="auction_status_end_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SwapProposal",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "proposal_type",
                    models.CharField(
                        choices=[("booking", "Booking exchange"), ("cash", "Cash offer")],
                        max_length=8,
                    ),
                ),
                ("cash_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("currency", models.CharField(blank=True, max_length=3)),
                ("payment_method_id", models.CharField(blank=True, max_length=128)),
                ("escrow_agreement", models.BooleanField(default=False)),
                ("message", models.TextField()),
                ("conditions", models.JSONField(blank=True, default=list)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("accepted", "Accepted"),
                            ("rejected", "Rejected"),
                            ("expired", "Expired"),
                        ],
                        default="pending",
                        max_length=8,
                    ),
                ),
                ("rejection_reason", models.CharField(blank=True, max_length=255)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "auction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="proposals",
                        to="swaps.swapauction",
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="offered_in_proposals",
                        to="bookings.booking",
                    ),
                ),
                (
                    "proposer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="swap_proposals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "swap",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="proposals",
                        to="swaps.swap",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["swap", "status"], name="proposal_swap_status_idx"),
                    models.Index(fields=["proposer", "status"], name="proposal_proposer_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("proposal_type", "booking"),
                                ("booking__isnull", False),
                                ("cash_amount__isnull", True),
                            ),
                            models.Q(
                                ("proposal_type", "cash"),
                                ("booking__isnull", True),
                                ("cash_amount__isnull", False),
                            ),
                            _connector="OR",
                        ),
                        name="proposal_offer_matches_type",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("swap", "proposer"),
                        name="one_pending_proposal_per_proposer",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SwapTargeting",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("accepted", "Accepted"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        default="active",
                        max_length=10,
                    ),
                ),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "proposal",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="targeting",
                        to="swaps.swapproposal",
                    ),
                ),
                (
                    "source_swap",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="outgoing_targets",
                        to="swaps.swap",
                    ),
                ),
                (
                    "target_swap",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="incoming_targets",
                        to="swaps.swap",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["target_swap", "status"], name="targeting_target_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")),
                        fields=("source_swap",),
                        name="one_active_target_per_source",
                    ),
                ],
            },
        ),
    ]
