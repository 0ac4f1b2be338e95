"""
Management command to deliver queued emails.
Usage: python manage.py run_email_queue [--once] [--transport dotted.path.Transport]
"""
from django.core.management.base import BaseCommand

from emailqueue.runner import EmailQueueRunner, QueueConfig
from emailqueue.transports import load_transport


class Command(BaseCommand):
    help = 'Deliver pending queued emails in batches until interrupted.'

    def add_arguments(self, parser):
        parser.add_argument('--once', action='store_true', help='Process a single batch and exit.')
        parser.add_argument('--transport', default=None, help='Override EMAIL_QUEUE["TRANSPORT"].')

    def handle(self, *args, **options):
        runner = EmailQueueRunner(load_transport(options['transport']), QueueConfig.from_settings())
        if options['once']:
            result = runner.run_batch()
            self.stdout.write(self.style.SUCCESS(
                f'Processed {result.attempted} emails: {result.sent} sent, '
                f'{result.retrying} retrying, {result.failed} failed.'
            ))
            return
        try:
            runner.run()
        except KeyboardInterrupt:
            self.stdout.write('Email queue runner stopped.')
