# Generated manually

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('sites', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Generation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content_hash', models.CharField(help_text='Content hash of the source tree this generation was rendered from', max_length=64)),
                ('output_path', models.CharField(max_length=1024)),
                ('stale', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('site', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='generations', to='sites.site')),
            ],
            options={
                'db_table': 'generations',
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='generation',
            constraint=models.UniqueConstraint(condition=models.Q(('stale', False)), fields=('site',), name='one_fresh_generation_per_site'),
        ),
        migrations.CreateModel(
            name='Binding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.CharField(max_length=1024)),
                ('path', models.CharField(help_text='Absolute path of the bound file', max_length=1024)),
                ('generation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bindings', to='generation.generation')),
            ],
            options={
                'db_table': 'bindings',
            },
        ),
        migrations.AddConstraint(
            model_name='binding',
            constraint=models.UniqueConstraint(fields=('generation', 'url'), name='unique_binding_url'),
        ),
        migrations.CreateModel(
            name='Post',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.CharField(max_length=1024)),
                ('title', models.CharField(max_length=500)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('email_sent', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('site', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='posts', to='sites.site')),
            ],
            options={
                'db_table': 'posts',
                'ordering': ['-published_at', '-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='post',
            constraint=models.UniqueConstraint(fields=('site', 'url'), name='unique_post_url'),
        ),
        migrations.CreateModel(
            name='PostEmailBinding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.CharField(max_length=1024)),
                ('html_path', models.CharField(max_length=1024)),
                ('text_path', models.CharField(max_length=1024)),
                ('generation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='post_email_bindings', to='generation.generation')),
            ],
            options={
                'db_table': 'post_email_bindings',
            },
        ),
        migrations.AddConstraint(
            model_name='postemailbinding',
            constraint=models.UniqueConstraint(fields=('generation', 'url'), name='unique_post_email_binding'),
        ),
    ]
