"""
Mimic Brain - multi-speaker voice conversation bot.
"""

__version__ = "0.1.0"
