import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('drivers', '0001_initial'),
        ('matches', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='TripLeaseAgreement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('lessor', models.JSONField()),
                ('lessee', models.JSONField()),
                ('driver_snapshot', models.JSONField()),
                ('trip', models.JSONField()),
                ('payment', models.JSONField()),
                ('insurance', models.JSONField(default=dict)),
                ('locations', models.JSONField(blank=True, null=True)),
                ('lessor_signature', models.JSONField(blank=True, null=True)),
                ('lessee_signature', models.JSONField(blank=True, null=True)),
                ('trip_tracking', models.JSONField(blank=True, null=True)),
                ('status', models.CharField(choices=[('pending_lessor', 'Awaiting Lessor Signature'), ('pending_lessee', 'Awaiting Lessee Signature'), ('signed', 'Signed'), ('in_progress', 'Trip In Progress'), ('completed', 'Completed'), ('voided', 'Voided')], default='pending_lessor', max_length=20)),
                ('signed_at', models.DateTimeField(blank=True, null=True)),
                ('voided_at', models.DateTimeField(blank=True, null=True)),
                ('voided_reason', models.TextField(blank=True)),
                ('rated', models.BooleanField(default=False)),
                ('rating_given', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('rating_comment', models.TextField(blank=True)),
                ('rated_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField()),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='agreements', to='drivers.driver')),
                ('lessee_owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='agreements_as_lessee', to=settings.AUTH_USER_MODEL)),
                ('lessor_owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='agreements_as_lessor', to=settings.AUTH_USER_MODEL)),
                ('match', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='agreement', to='matches.match')),
            ],
            options={
                'db_table': 'tlas',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='DriverRating',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rated_by_company', models.CharField(blank=True, max_length=200)),
                ('rating', models.PositiveSmallIntegerField()),
                ('comment', models.TextField(blank=True)),
                ('trip_origin', models.CharField(blank=True, max_length=200)),
                ('trip_destination', models.CharField(blank=True, max_length=200)),
                ('created_at', models.DateTimeField()),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ratings', to='drivers.driver')),
                ('driver_owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='driver_ratings_received', to=settings.AUTH_USER_MODEL)),
                ('rated_by_owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='driver_ratings_given', to=settings.AUTH_USER_MODEL)),
                ('tla', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ratings', to='agreements.tripleaseagreement')),
            ],
            options={
                'db_table': 'ratings',
                'ordering': ['-created_at'],
            },
        ),
    ]
