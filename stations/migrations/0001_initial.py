import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('crm', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Station',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('address', models.CharField(max_length=500)),
                ('city', models.CharField(max_length=100)),
                ('state', models.CharField(max_length=100)),
                ('postal_code', models.CharField(blank=True, default='', max_length=10)),
                ('latitude', models.FloatField()),
                ('longitude', models.FloatField()),
                ('fuel_types', models.CharField(default='CNG', help_text='Comma-separated', max_length=200)),
                ('phone', models.CharField(blank=True, default='', max_length=20)),
                ('opening_hours', models.CharField(blank=True, default='24/7', max_length=50)),
                ('amenities', models.CharField(blank=True, default='', help_text='Comma-separated', max_length=500)),
                ('is_partner', models.BooleanField(default=False)),
                ('is_verified', models.BooleanField(default=False)),
                ('rating', models.FloatField(default=0, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(5)])),
                ('approval_status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('rejection_reason', models.TextField(blank=True, default='')),
                ('subscription_type', models.CharField(choices=[('free', 'Free'), ('basic', 'Basic'), ('premium', 'Premium')], default='free', max_length=20)),
                ('cng_available', models.BooleanField(default=True)),
                ('cng_quantity_kg', models.FloatField(default=0)),
                ('cng_updated_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('added_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='added_stations', to='crm.admin')),
                ('owner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='stations', to='crm.stationowner')),
            ],
            options={
                'ordering': ['-is_partner', '-created_at'],
                'indexes': [
                    models.Index(fields=['latitude', 'longitude'], name='station_location_idx'),
                    models.Index(fields=['approval_status', 'is_verified'], name='station_visibility_idx'),
                ],
            },
        ),
    ]
