"""
LeetAnki review core.

Tracks completed problems and schedules their reviews with an SM-2 variant.
"""

__version__ = "0.1.0"
