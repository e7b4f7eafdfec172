"""
pgxman - PostgreSQL extension manager.

Resolves extensions against the pgxman registry, configures the apt
repositories they need and installs them with the system package manager.
"""

__version__ = "1.0.0"
__author__ = "pgxman Team"
