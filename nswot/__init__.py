"""
nswot: evidence-grounded SWOT generation over anonymized organizational data.
"""

__version__ = "0.4.0"
