"""
OCR service client.

The OCR service receives a PDF upload and returns the reconstructed page
text, with a page marker line after every page.
"""

from .client import OCRAPIError, OCRClient, OCRConnectionError, OCRError

__all__ = ["OCRClient", "OCRError", "OCRAPIError", "OCRConnectionError"]
