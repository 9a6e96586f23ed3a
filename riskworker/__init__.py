"""
Risk scoring and anomaly detection worker for the product authentication
platform.
"""

__version__ = "1.0.0"
