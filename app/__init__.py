"""
DiagnosIA X-ray Relay - Chest X-ray analysis relay

Forwards chest X-ray images to a hosted vision model and returns a
structured radiology-style report for the patient's exam history.

IMPORTANT: Reports are AI-assisted and must be validated by a physician.
"""

__version__ = "1.0.0"
