import logging

from django.core.management.base import BaseCommand, CommandError

from prize.exceptions import SpinError
from prize.services import reset_all, reset_campaign, reset_gift

logger = logging.getLogger('reset_winners')


class Command(BaseCommand):
    help = 'Reset the winner counters of a gift, of a campaign, or of every gift.'

    def add_arguments(self, parser):
        group = parser.add_mutually_exclusive_group(required=True)
        group.add_argument('--gift', type=int, help='Gift id to reset')
        group.add_argument('--campaign', type=int, help='Campaign id whose gifts are reset')
        group.add_argument('--all', action='store_true', help='Reset every gift')

    def handle(self, *args, **options):
        try:
            if options['gift'] is not None:
                results = [reset_gift(options['gift'])]
            elif options['campaign'] is not None:
                results = reset_campaign(options['campaign'])
            else:
                results = reset_all()
        except SpinError as exc:
            raise CommandError(str(exc)) from exc

        for result in results:
            logger.info(f'gift {result.gift.id} reset ({result.cleared} cleared)')
            self.stdout.write(
                f'{result.gift.name}: {result.cleared} cleared, {result.reopened} tickets reopened'
            )
