"""
Management command to send queued notification requests (outbox worker).
"""
import time

from django.core.management.base import BaseCommand

from orders.conf import orders_setting
from orders.infra.notifications import NotificationDispatcher


class Command(BaseCommand):
    help = 'Send notification requests queued in the outbox'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=orders_setting("OUTBOX_BATCH_SIZE"),
            help='Maximum number of events to process in one run',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Run in loop (for production)',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=3,
            help='Interval between loops in seconds',
        )

    def handle(self, *args, **options):
        limit = options['limit']
        interval = options['interval']

        dispatcher = NotificationDispatcher()

        if not options['loop']:
            delivered = dispatcher.dispatch_pending(limit=limit)
            self.stdout.write(self.style.SUCCESS(f'Delivered {delivered} notifications'))
            return

        self.stdout.write(f'Starting notification dispatcher in loop mode (interval: {interval}s)')
        try:
            while True:
                delivered = dispatcher.dispatch_pending(limit=limit)
                if delivered > 0:
                    self.stdout.write(self.style.SUCCESS(f'Delivered {delivered} notifications'))
                time.sleep(interval)
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('Stopped by user'))
