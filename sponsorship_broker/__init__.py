"""Gas tank sponsorship service.

Operates one gas tank per (chain, token) pair and serves signed sponsorship
quotes and account state over HTTP.
"""

from .app import __version__, create_app

__all__ = ["__version__", "create_app"]
