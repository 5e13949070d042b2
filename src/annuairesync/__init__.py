"""annuaire-sync - Directory synchronization engine for a health messaging operator."""

__version__ = "0.1.0"
