"""Receipt Capture.

Live document capture for an expense bookkeeping workflow: detects a
receipt or invoice in a camera feed, lets the user correct its corners,
and produces a rectified, contrast-enhanced image ready for OCR.
"""

__version__ = "1.0.0"
