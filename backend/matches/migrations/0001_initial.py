import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('drivers', '0001_initial'),
        ('loads', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Match',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('initiated_by', models.CharField(choices=[('load_owner', 'Load Owner'), ('driver_owner', 'Driver Owner')], max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('countered', 'Countered'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('expired', 'Expired'), ('cancelled', 'Cancelled'), ('tla_pending', 'Awaiting TLA Signatures'), ('tla_signed', 'TLA Signed'), ('in_progress', 'Trip In Progress'), ('completed', 'Completed')], default='pending', max_length=20)),
                ('match_score', models.PositiveSmallIntegerField(default=0)),
                ('original_terms', models.JSONField()),
                ('counter_terms', models.JSONField(blank=True, null=True)),
                ('decline_reason', models.TextField(blank=True)),
                ('load_snapshot', models.JSONField()),
                ('driver_snapshot', models.JSONField()),
                ('created_at', models.DateTimeField()),
                ('expires_at', models.DateTimeField()),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='matches', to='drivers.driver')),
                ('driver_owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='driver_matches', to=settings.AUTH_USER_MODEL)),
                ('load', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='matches', to='loads.load')),
                ('load_owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='load_matches', to=settings.AUTH_USER_MODEL)),
                ('recipient_owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='incoming_matches', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'matches',
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='match',
            constraint=models.UniqueConstraint(condition=models.Q(('status__in', ('pending', 'countered', 'accepted', 'tla_pending', 'tla_signed', 'in_progress'))), fields=('driver', 'load'), name='unique_open_match_per_driver_load'),
        ),
    ]
