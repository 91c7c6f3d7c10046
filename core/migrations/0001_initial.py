from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import core.models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Couple',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('invite_code', models.CharField(blank=True, help_text='Share this code with your partner to join', max_length=20, unique=True)),
                ('expected_partner', models.CharField(blank=True, default='', help_text='Username allowed to join (blank: anyone with the code)', max_length=150)),
                ('member_names', models.JSONField(blank=True, default=dict, help_text='Display names keyed by user id')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user1', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='couple_as_user1', to=settings.AUTH_USER_MODEL)),
                ('user2', models.ForeignKey(blank=True, help_text='Empty until the partner joins with the invite code', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='couple_as_user2', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Couple',
                'verbose_name_plural': 'Couples',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('user1', models.F('user2')), _negated=True), name='couple_members_distinct'),
                ],
            },
        ),
        migrations.CreateModel(
            name='QuickPick',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.CharField(max_length=200)),
                ('emoji', models.CharField(blank=True, default='', max_length=16)),
                ('category', models.CharField(choices=[('sweet', 'Sweet'), ('playful', 'Playful'), ('loving', 'Loving')], db_index=True, max_length=20)),
                ('order', models.PositiveIntegerField(db_index=True, default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Quick pick',
                'verbose_name_plural': 'Quick picks',
                'ordering': ['order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Profile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('display_name', models.CharField(blank=True, help_text='Name shown to your partner (defaults to username)', max_length=50)),
                ('avatar_url', models.URLField(blank=True, default='', help_text='Avatar reference supplied by the identity provider', max_length=500)),
                ('push_token', models.CharField(blank=True, default='', help_text='Device address for push notifications', max_length=255)),
                ('push_token_updated_at', models.DateTimeField(blank=True, null=True)),
                ('timezone', models.CharField(default='UTC', help_text="For working out the correct 'today' for check-ins", max_length=50)),
                ('morning_checkin_time', models.CharField(default='09:00', help_text='Local time for the morning check-in reminder (HH:MM)', max_length=5, validators=[core.models.validate_time_of_day])),
                ('evening_reminder_time', models.CharField(default='20:00', help_text='Local time for the evening reminder (HH:MM)', max_length=5, validators=[core.models.validate_time_of_day])),
                ('wifi_only_sync', models.BooleanField(default=False, help_text='Only sync photos and videos on Wi-Fi')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('couple', models.ForeignKey(blank=True, help_text='The couple this user belongs to', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='profiles', to='core.couple')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='profile', to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name='Marshmallow',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField(blank=True, default='')),
                ('kind', models.CharField(choices=[('custom', 'Custom message'), ('quick-pick', 'Quick pick'), ('photo', 'Photo')], default='custom', max_length=20)),
                ('photo_url', models.URLField(blank=True, default='', max_length=500)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, editable=False)),
                ('read', models.BooleanField(default=False)),
                ('couple', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='marshmallows', to='core.couple')),
                ('quick_pick', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='marshmallows', to='core.quickpick')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='received_marshmallows', to=settings.AUTH_USER_MODEL)),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_marshmallows', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Marshmallow',
                'verbose_name_plural': 'Marshmallows',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['couple', 'created_at'], name='marsh_couple_created_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('sender', models.F('recipient')), _negated=True), name='marshmallow_sender_not_recipient'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DailyCheckin',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField(help_text="Calendar date in the author's timezone")),
                ('mood', models.CharField(help_text='One of the predefined moods or any custom word', max_length=50)),
                ('mood_note', models.TextField(blank=True, default='')),
                ('gratitude', models.TextField()),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, editable=False)),
                ('author', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='checkins', to=settings.AUTH_USER_MODEL)),
                ('couple', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='checkins', to='core.couple')),
            ],
            options={
                'verbose_name': 'Daily check-in',
                'verbose_name_plural': 'Daily check-ins',
                'ordering': ['-date', '-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('couple', 'author', 'date'), name='unique_checkin_per_author_per_day'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Memory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True, default='')),
                ('photo_urls', models.JSONField(blank=True, default=list)),
                ('video_urls', models.JSONField(blank=True, default=list)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('date', models.DateField(help_text='When the memory happened')),
                ('source', models.CharField(choices=[('manual', 'Manually entered'), ('suggested', 'Suggested'), ('device', 'Imported from device')], default='manual', max_length=20)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, editable=False)),
                ('author', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memories', to=settings.AUTH_USER_MODEL)),
                ('couple', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memories', to='core.couple')),
            ],
            options={
                'verbose_name': 'Memory',
                'verbose_name_plural': 'Memories',
                'ordering': ['-date', '-created_at'],
            },
        ),
        migrations.CreateModel(
            name='NotificationReceipt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_kind', models.CharField(choices=[('marshmallow', 'Marshmallow'), ('checkin', 'Check-in'), ('memory', 'Memory')], max_length=20)),
                ('event_id', models.PositiveBigIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')], db_index=True, default='pending', max_length=20)),
                ('error', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('recipient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='notification_receipts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('event_kind', 'event_id'), name='unique_receipt_per_event'),
                ],
            },
        ),
    ]
