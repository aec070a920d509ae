from django.contrib import admin
from .models import Branch, Location


class LocationInline(admin.TabularInline):
    model = Location
    extra = 0


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'code']
    inlines = [LocationInline]
