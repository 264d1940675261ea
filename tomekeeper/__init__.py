"""
tomekeeper: versioned, self-repairing save state for the Tome of Secrets reading game.
"""

__version__ = "0.5.0"
