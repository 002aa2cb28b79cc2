from django.contrib import admin
from django.conf import settings

admin.site.site_header = getattr(settings, "ADMIN_SITE_HEADER", "Ledger Desk")
admin.site.site_title = getattr(settings, "ADMIN_SITE_TITLE", "Ledger Desk admin")
admin.site.index_title = "Saved journal drafts"
