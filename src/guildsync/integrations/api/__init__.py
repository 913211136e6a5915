"""Client for the remote scripts service."""

from .errors import ScriptsApiError, ScriptsApiPermanentError, ScriptsApiTransientError
from .models import Guild, Script, User, UserGuild, has_admin
from .rest import ScriptsApiClient

__all__ = [
    "Guild",
    "Script",
    "ScriptsApiClient",
    "ScriptsApiError",
    "ScriptsApiPermanentError",
    "ScriptsApiTransientError",
    "User",
    "UserGuild",
    "has_admin",
]
