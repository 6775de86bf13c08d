import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import connections
from django.db.utils import OperationalError


class Command(BaseCommand):
    help = "Blocks until the default database accepts connections (bounded retries)."

    def add_arguments(self, parser):
        parser.add_argument("--retries", type=int, default=settings.DB_CONNECT_RETRIES)
        parser.add_argument("--delay", type=float, default=settings.DB_CONNECT_RETRY_DELAY)

    def handle(self, *args, **options):
        retries = max(1, options["retries"])
        delay = options["delay"]
        conn = connections["default"]

        for attempt in range(1, retries + 1):
            try:
                conn.ensure_connection()
            except OperationalError as exc:
                self.stderr.write(f"Database unavailable (attempt {attempt}/{retries}): {exc}")
                if attempt == retries:
                    raise CommandError("Could not connect to the database") from exc
                time.sleep(delay)
            else:
                self.stdout.write(self.style.SUCCESS("Database available"))
                return
