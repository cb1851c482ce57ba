"""
Script2Video: composes narrated videos from script timelines.
"""

__version__ = "0.1.0"
