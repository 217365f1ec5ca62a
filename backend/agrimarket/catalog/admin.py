from django.contrib import admin
from .models import Product


class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "seller", "price", "availability", "is_active")
    list_filter = ("availability", "is_active")
    search_fields = ("name",)


admin.site.register(Product, ProductAdmin)
