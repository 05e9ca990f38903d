from django.core.management.base import BaseCommand, CommandError

from crm.models import Admin, StationOwner

from ._passwords import read_password

ACCOUNT_MODELS = {
    'admin': Admin,
    'owner': StationOwner,
}


class Command(BaseCommand):
    help = 'Set a new password for an admin or station owner account'

    def add_arguments(self, parser):
        parser.add_argument('email', type=str, help='Account email')
        parser.add_argument('--account', choices=sorted(ACCOUNT_MODELS), default='admin',
                            help='Which kind of account to reset')
        parser.add_argument('--no-input', action='store_false', dest='interactive',
                            help='Read the password from NEW_PASSWORD instead of prompting')

    def handle(self, *args, **options):
        model = ACCOUNT_MODELS[options['account']]
        email = options['email'].strip().lower()

        account = model.objects.filter(email=email).first()
        if account is None:
            raise CommandError(f'No {options["account"]} account with email {email}')

        account.set_password(read_password('NEW_PASSWORD', options['interactive']))
        account.save(update_fields=['password_hash', 'updated_at'])
        self.stdout.write(self.style.SUCCESS(f'Password updated for {email}'))
