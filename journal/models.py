from django.db import models


class JournalDraft(models.Model):
    # Backend ids; users and companies live in the accounting backend
    user_id = models.CharField(max_length=64)
    company_id = models.CharField(max_length=64)
    kind = models.CharField(max_length=16, default="manual")
    header = models.JSONField(default=dict)
    lines = models.JSONField(default=list)
    next_id = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]
        constraints = [
            models.UniqueConstraint(fields=["user_id", "company_id", "kind"], name="one_draft_per_form"),
        ]

    def __str__(self): return f"{self.kind} draft · {self.header.get('description') or '(untitled)'}"

    @property
    def line_count(self):
        return len(self.lines or [])
