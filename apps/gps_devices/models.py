from django.db import models


class Device(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('maintenance', 'Maintenance'),
    ]

    imei = models.CharField(max_length=20, unique=True, help_text='Unique id reported by the tracker')
    name = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    attributes = models.JSONField(default=dict, blank=True,
                                  help_text='Per-device decoder overrides, e.g. {"suntech.hbm": true}')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.imei})"
