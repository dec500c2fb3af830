"""tinyci -- clone, build and deploy repositories with live build logs."""

from tinyci.config import VERSION as __version__

__all__ = ["__version__"]
