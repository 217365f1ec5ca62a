from django.contrib import admin
from .models import Review


class ReviewAdmin(admin.ModelAdmin):
    list_display = ("buyer", "seller", "rating", "experience", "is_visible", "created_at")
    list_filter = ("rating", "is_visible")
    search_fields = ("comment", "title")


admin.site.register(Review, ReviewAdmin)
