from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.core.validators import validate_email

from crm.models import Admin

from ._passwords import read_password


class Command(BaseCommand):
    help = 'Create a platform admin, or reset the password of an existing one'

    def add_arguments(self, parser):
        parser.add_argument('email', type=str, help='Admin login email')
        parser.add_argument('--name', type=str, default='Admin User', help='Display name')
        parser.add_argument('--role', choices=[choice for choice, _ in Admin.ROLE_CHOICES],
                            default=Admin.ROLE_ADMIN, help='Account role')
        parser.add_argument('--no-input', action='store_false', dest='interactive',
                            help='Read the password from ADMIN_PASSWORD instead of prompting')

    def handle(self, *args, **options):
        email = options['email'].strip().lower()
        try:
            validate_email(email)
        except ValidationError:
            raise CommandError(f'Invalid email: {email}')

        password = read_password('ADMIN_PASSWORD', options['interactive'])

        admin = Admin.objects.filter(email=email).first()
        if admin is not None:
            admin.set_password(password)
            admin.role = options['role']
            admin.save(update_fields=['password_hash', 'role', 'updated_at'])
            self.stdout.write(self.style.WARNING(f'Admin {email} already exists - password and role updated'))
            return

        admin = Admin(email=email, name=options['name'], role=options['role'])
        admin.set_password(password)
        admin.save()
        self.stdout.write(self.style.SUCCESS(f'Created {admin.role} {email}'))
