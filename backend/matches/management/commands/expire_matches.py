from django.core.management.base import BaseCommand
from django.utils import timezone

from matches.models import Match, NEGOTIABLE_STATUSES
from services.negotiation import MatchNegotiationEngine


class Command(BaseCommand):
    help = "Expire match requests that were not answered before their expiry time."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many matches would expire without changing them.",
        )

    def handle(self, *args, **options):
        now = timezone.now()

        if options["dry_run"]:
            pending = Match.objects.filter(status__in=NEGOTIABLE_STATUSES, expires_at__lt=now).count()
            self.stdout.write(
                self.style.WARNING(f"DRY RUN: Would expire {pending} match(es).")
            )
            return

        expired_count = MatchNegotiationEngine().sweep_expired(now=now)
        self.stdout.write(
            self.style.SUCCESS(f"Expired {expired_count} match(es).")
        )
