"""
Gearshelf
Product identity resolution and duplicate-resolution pipeline for a
device catalog built from Amazon product links.
"""

__version__ = '0.4.0'
