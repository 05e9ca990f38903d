import csv
import time

import requests
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from stations.models import Station
from stations.services import GeocodingService

REQUIRED_COLUMNS = ('name', 'address', 'city', 'state')


class Command(BaseCommand):
    help = 'Load CNG station data from CSV file'

    def add_arguments(self, parser):
        parser.add_argument('csv_file', type=str, help='Path to CSV file')
        parser.add_argument('--limit', type=int, default=None, help='Max stations to load')
        parser.add_argument('--replace', action='store_true',
                            help='Delete admin-managed stations (no owner) before loading')
        parser.add_argument('--pending', action='store_true',
                            help='Import as pending instead of approved')

    def handle(self, *args, **options):
        csv_file = options['csv_file']

        self.stdout.write(f'Loading stations from {csv_file}...')

        try:
            file = open(csv_file, 'r', encoding='utf-8-sig')
        except OSError as e:
            raise CommandError(f'Cannot open {csv_file}: {e}')

        with file:
            reader = csv.DictReader(file)
            missing = [column for column in REQUIRED_COLUMNS if column not in (reader.fieldnames or [])]
            if missing:
                raise CommandError(f'Missing column: {", ".join(missing)}')

            # Replacing and loading succeed or fail together
            with transaction.atomic():
                if options['replace']:
                    deleted, _ = Station.objects.filter(owner__isnull=True).delete()
                    self.stdout.write(f'Removed {deleted} existing stations')
                count, skipped = self.load_rows(reader, options)

        self.stdout.write(
            self.style.SUCCESS(f'\nSuccessfully loaded {count} stations')
        )
        if skipped > 0:
            self.stdout.write(
                self.style.WARNING(f'Skipped {skipped} rows')
            )

    def load_rows(self, reader, options):
        limit = options.get('limit')
        geocoder = GeocodingService()
        count = 0
        skipped = 0

        for row_num, row in enumerate(reader, start=1):
            if limit and count >= limit:
                break

            name = (row['name'] or '').strip()
            address = (row['address'] or '').strip()
            city = (row['city'] or '').strip()
            state = (row['state'] or '').strip()

            if not all([name, address, city, state]):
                skipped += 1
                continue

            try:
                lat = float(row['latitude'])
                lng = float(row['longitude'])
            except (KeyError, TypeError, ValueError):
                self.stdout.write(f'Geocoding: {address}, {city}, {state}')
                try:
                    place = geocoder.geocode(f"{address}, {city}, {state}")
                except (ValueError, requests.RequestException) as e:
                    self.stdout.write(self.style.WARNING(f'Could not geocode row {row_num}: {e}'))
                    skipped += 1
                    continue
                lat, lng = place['lat'], place['lng']
                # Nominatim usage policy: at most one request per second
                time.sleep(1)

            Station.objects.create(
                name=name,
                address=address,
                city=city,
                state=state,
                postal_code=(row.get('postal_code') or '').strip(),
                latitude=lat,
                longitude=lng,
                fuel_types=(row.get('fuel_types') or 'CNG').strip(),
                phone=(row.get('phone') or '').strip(),
                is_partner=(row.get('is_partner') or '').strip().lower() in ('1', 'true', 'yes'),
                approval_status=Station.APPROVAL_PENDING if options['pending'] else Station.APPROVAL_APPROVED,
                is_verified=not options['pending'],
            )
            count += 1

            if count % 50 == 0:
                self.stdout.write(self.style.SUCCESS(f'Loaded {count} stations...'))

        return count, skipped
