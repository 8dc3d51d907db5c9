"""
companyos backend services.

AI command scope gateway and expiration notification engine for the
business-management workspace.
"""

__version__ = "1.0.0"
