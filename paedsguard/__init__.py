"""
paedsguard - decision-support core for pediatric emergency care.
"""
__version__ = "0.3.0"
