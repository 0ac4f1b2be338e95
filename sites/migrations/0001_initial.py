# Generated manually

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Site',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(blank=True, max_length=255)),
                ('subdomain', models.CharField(help_text='DNS label under the root domain', max_length=63, unique=True)),
                ('custom_domain', models.CharField(blank=True, help_text='Fully-qualified custom domain, if registered', max_length=253, null=True, unique=True)),
                ('theme', models.CharField(max_length=50)),
                ('source_type', models.CharField(choices=[('repository', 'Repository'), ('folder', 'Uploaded folder')], default='repository', max_length=20)),
                ('repository_url', models.URLField(blank=True)),
                ('live_branch', models.CharField(blank=True, max_length=255)),
                ('test_branch', models.CharField(blank=True, max_length=255)),
                ('live_hash', models.CharField(blank=True, help_text='Content hash of the last fetched source for the live branch', max_length=64)),
                ('is_live', models.BooleanField(default=True)),
                ('email_mode', models.CharField(choices=[('html', 'HTML'), ('plaintext', 'Plain text')], default='html', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sites', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sites',
                'ordering': ['-created_at'],
            },
        ),
    ]
