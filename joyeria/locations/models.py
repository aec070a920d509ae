from django.db import models


class Branch(models.Model):
    """Store branches (sucursales)"""
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, unique=True)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'branches'
        ordering = ['name']


class Location(models.Model):
    """
    Stock locations inside a branch.

    Sales are served from the showcase (VITRINA); purchases land in the
    storeroom (BODEGA).
    """
    SHOWCASE = 'VITRINA'
    STOREROOM = 'BODEGA'

    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='locations')
    name = models.CharField(max_length=100)
    is_showcase = models.BooleanField(default=False)
    is_storeroom = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.branch.code} / {self.name}"

    class Meta:
        db_table = 'locations'
        unique_together = [['branch', 'name']]
