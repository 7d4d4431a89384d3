"""Lost-and-found matching, claims and verification engine"""

__version__ = "1.0.0"
