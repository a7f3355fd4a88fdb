"""
NominaHub - API Routers
"""

from nominahub.routers import payroll

__all__ = ["payroll"]
