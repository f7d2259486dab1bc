import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        ('billing', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='MovementEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('direction', models.CharField(choices=[('IN', 'Restock'), ('OUT', 'Sale')], db_index=True, max_length=3)),
                ('quantity', models.PositiveIntegerField(help_text='Units moved', validators=[django.core.validators.MinValueValidator(1)])),
                ('unit_price', models.DecimalField(decimal_places=2, help_text='Unit price at the time of the movement', max_digits=10)),
                ('remark', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, editable=False)),
                ('actor', models.ForeignKey(help_text='User who performed the movement', on_delete=django.db.models.deletion.PROTECT, related_name='stock_movements', to=settings.AUTH_USER_MODEL)),
                ('bill', models.ForeignKey(blank=True, help_text='Bill that caused an OUT movement', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='billing.bill')),
                ('product', models.ForeignKey(help_text='Product whose stock changed', on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='catalog.product')),
            ],
            options={
                'verbose_name': 'Stock Movement',
                'verbose_name_plural': 'Stock Movements',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['product', 'created_at'], name='movement_product_time_idx'),
                    models.Index(fields=['direction', 'created_at'], name='movement_direction_time_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 1)), name='movement_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(('direction__in', ['IN', 'OUT'])), name='movement_direction_valid'),
                ],
            },
        ),
    ]
