"""Receipt OCR Parser.

Turns photographed payment receipts (bank transfer slips, mobile-money
confirmations, retail receipts) into structured transaction records using
OpenCV preprocessing, multi-strategy Tesseract OCR, and cascading
rule-based field extraction.
"""
