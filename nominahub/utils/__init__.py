"""
NominaHub - Utilities
"""
