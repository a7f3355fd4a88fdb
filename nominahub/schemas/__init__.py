"""
NominaHub - API Schemas
"""
