from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Device',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('imei', models.CharField(help_text='Unique id reported by the tracker', max_length=20, unique=True)),
                ('name', models.CharField(max_length=100)),
                ('status', models.CharField(
                    choices=[('active', 'Active'), ('inactive', 'Inactive'), ('maintenance', 'Maintenance')],
                    default='active',
                    max_length=20,
                )),
                ('attributes', models.JSONField(
                    blank=True,
                    default=dict,
                    help_text='Per-device decoder overrides, e.g. {"suntech.hbm": true}',
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
