"""
AnchorWatch — distributed coherence & resonance monitor.
"""

__version__ = "0.1.0"
