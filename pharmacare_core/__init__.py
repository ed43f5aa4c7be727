# =============================================================================
# pharmacare_core/__init__.py
# Offline-first persistence core for the PharmaCare point of sale
# =============================================================================
"""
PharmaCare core package.

The feature screens (inventory, patients, prescriptions, sales, suppliers)
talk to the data layer exclusively through ``pharmacare_core.offline``.
"""

__version__ = "1.0.0"
