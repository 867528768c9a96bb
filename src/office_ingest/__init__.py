"""
Office document → Assistant extraction → Check-grouped ledger rows

Splits uploaded office documents into pages, extracts payment transactions
from each page with a per-office OpenAI assistant, and groups them by check
number into header/detail rows. Every extraction is kept for human
validation, and validated history periodically fine-tunes the office model.
"""

__version__ = "0.1.0"
