import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Driver',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('location', models.CharField(blank=True, max_length=200)),
                ('vehicle_type', models.CharField(blank=True, choices=[('dry_van', 'Dry Van'), ('reefer', 'Reefer'), ('flatbed', 'Flatbed')], max_length=20)),
                ('certifications', models.JSONField(blank=True, default=list)),
                ('cdl_license', models.CharField(blank=True, max_length=50)),
                ('cdl_expiry', models.DateField(blank=True, null=True)),
                ('medical_card_expiry', models.DateField(blank=True, null=True)),
                ('availability', models.CharField(choices=[('available', 'Available'), ('on_trip', 'On-trip'), ('off_duty', 'Off-duty')], default='available', max_length=20)),
                ('rating', models.FloatField(default=0)),
                ('rating_count', models.PositiveIntegerField(default=0)),
                ('last_rated_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='drivers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'drivers',
                'ordering': ['name'],
            },
        ),
    ]
