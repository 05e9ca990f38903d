import getpass
import os

from django.core.management.base import CommandError

MIN_PASSWORD_LENGTH = 6


def read_password(env_var, interactive=True):
    """Password from the environment, else prompted twice on the terminal"""
    password = os.getenv(env_var)
    if password is None:
        if not interactive:
            raise CommandError(f'Set {env_var} or run without --no-input')
        password = getpass.getpass('Password: ')
        if password != getpass.getpass('Password (again): '):
            raise CommandError('Passwords do not match')

    if len(password) < MIN_PASSWORD_LENGTH:
        raise CommandError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password
