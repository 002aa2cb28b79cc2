from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="JournalDraft",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(max_length=64)),
                ("company_id", models.CharField(max_length=64)),
                ("kind", models.CharField(default="manual", max_length=16)),
                ("header", models.JSONField(default=dict)),
                ("lines", models.JSONField(default=list)),
                ("next_id", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-updated_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="journaldraft",
            constraint=models.UniqueConstraint(fields=("user_id", "company_id", "kind"), name="one_draft_per_form"),
        ),
    ]
