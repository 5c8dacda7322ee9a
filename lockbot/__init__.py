"""
lockbot - keeps group titles, nicknames and photos locked.
"""

__version__ = "0.1.0"
__logo__ = "🔒"
