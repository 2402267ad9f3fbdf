"""
Service-wide constants
"""

SERVICE_NAME = "acs-attendance-backend"
SYSTEM_CREDIT = "Developed & Designed by JPSystech"

# Notification event names
EVENT_REQUEST_CREATED = "attendance:request:created"
EVENT_REQUEST_PENDING = "attendance:request:pending"
EVENT_REQUEST_UPDATED = "attendance:request:updated"
EVENT_REQUEST_CANCELLED = "attendance:request:cancelled"
EVENT_PUNCH = "attendance:punch"
EVENT_MACHINE_SYNCED = "attendance:machine:synced"
