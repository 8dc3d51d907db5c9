"""
Declarative base shared by every companyos table.

Kept free of model imports so models, the audit table and tests can all
import it without cycles.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
