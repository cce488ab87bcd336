# infra/security_filters.py
"""
Logging filter that keeps secrets and contact details out of log output
"""

import re
import logging

MASK = "[REDACTED]"
PII_PATTERNS = [
    re.compile(r'([\w\.-]+@[\w\.-]+\.\w+)'),                 # emails
    re.compile(r'(\+\d[\d\-\s]{7,}\d)'),                      # phones
    re.compile(r'(\b\d{6,12}:[A-Za-z0-9_-]{30,})'),          # telegram bot tokens
    re.compile(r'((?<=Bearer )[A-Za-z0-9._~+/=-]+)'),        # bearer secrets
    re.compile(r'((?<=secret=)[^&\s]+)'),                    # secrets in query strings
]


def mask(text: str) -> str:
    for pattern in PII_PATTERNS:
        text = pattern.sub(MASK, text)
    return text


class PiiMaskFilter(logging.Filter):
    """Filter that masks PII and credentials in log messages"""

    def filter(self, record):
        if hasattr(record, 'msg') and record.msg:
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                message = str(record.msg)
            record.msg = mask(message)
            record.args = ()
        return True


def install(logger: logging.Logger = None):
    """Attach the filter to every handler of ``logger`` (root by default)."""
    target = logger or logging.getLogger()
    pii_filter = PiiMaskFilter()
    for handler in target.handlers:
        handler.addFilter(pii_filter)
    return pii_filter
