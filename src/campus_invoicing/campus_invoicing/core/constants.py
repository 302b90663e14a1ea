"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from decimal import Decimal

DEFAULT_HOURLY_RATE_MIN = Decimal("50.00")
DEFAULT_HOURLY_RATE_MAX = Decimal("75.00")

DEFAULT_LIST_LIMIT = 200
RECENT_INVOICES_LIMIT = 5
OVERDUE_INVOICE_DAYS = 30

TEMP_PASSWORD_LENGTH = 12
DEFAULT_TEMP_PASSWORD_TTL_DAYS = 14
DEFAULT_CLEANUP_RETRIES = 3
DEFAULT_REFERENCE_CACHE_MINUTES = 5

DEFAULT_LOGIN_MAX_ATTEMPTS = 5
DEFAULT_LOGIN_LOCKOUT_MINUTES = 15
MIN_PASSWORD_LENGTH = 8

IMPORT_ERROR_MESSAGE_LIMIT = 10
