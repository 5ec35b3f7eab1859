"""Server-rendered pages for the FotoCall lead tracker."""

from .routes import router

__all__ = ["router"]
