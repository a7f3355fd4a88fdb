"""
NominaHub - Services Package

Payroll engine and statutory tax calculators.
"""
