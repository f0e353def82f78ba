"""
gqlkit
GraphQL server toolkit on Strawberry, FastAPI and SQLAlchemy
"""

__version__ = "0.1.0"

# Register built-in scalars and types with the schema loader
from . import scalars, types  # noqa: F401
from .config import settings as Config
from .core.users import get_user_for_context
from .database import db
from .loader import load
from .morpher import expose
from .server import initialize
from .versions import REQUIRED_VERSIONS, check_package_versions, ensure_package_versions

__all__ = [
    "Config",
    "REQUIRED_VERSIONS",
    "__version__",
    "check_package_versions",
    "db",
    "ensure_package_versions",
    "expose",
    "get_user_for_context",
    "initialize",
    "load",
]
