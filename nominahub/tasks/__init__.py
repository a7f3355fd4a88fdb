"""
NominaHub - Background Tasks
"""
