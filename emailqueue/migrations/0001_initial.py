# Generated manually

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='QueuedEmail',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('from_addr', models.CharField(max_length=320)),
                ('to_addr', models.CharField(max_length=320)),
                ('subject', models.CharField(max_length=998)),
                ('body', models.TextField()),
                ('mode', models.CharField(choices=[('html', 'HTML'), ('plaintext', 'Plain text')], default='html', max_length=20)),
                ('stream', models.CharField(choices=[('outbound', 'Outbound'), ('broadcast', 'Broadcast')], default='outbound', max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')], db_index=True, default='pending', max_length=20)),
                ('fail_count', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'db_table': 'queued_emails',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='queued_email_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='QueuedEmailHeader',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveIntegerField()),
                ('name', models.CharField(max_length=255)),
                ('value', models.TextField()),
                ('email', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='headers', to='emailqueue.queuedemail')),
            ],
            options={
                'db_table': 'queued_email_headers',
                'ordering': ['email', 'position'],
            },
        ),
        migrations.AddConstraint(
            model_name='queuedemailheader',
            constraint=models.UniqueConstraint(fields=('email', 'position'), name='unique_header_position'),
        ),
        migrations.CreateModel(
            name='QueuedEmailError',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.IntegerField(blank=True, null=True)),
                ('message', models.TextField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('email', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='errors', to='emailqueue.queuedemail')),
            ],
            options={
                'db_table': 'queued_email_errors',
                'ordering': ['created_at'],
            },
        ),
    ]
