"""Global search engine instance to avoid circular imports."""

from .config import get_settings
from .core.engine import SearchEngine

# Global search engine instance
settings = get_settings()
search_engine = SearchEngine.from_settings(settings)
