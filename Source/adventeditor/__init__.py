"""Editor for 24 numbered markdown texts stored in a remote table.

Contains the REST client, configuration and the editing session.
"""

from .api import TextStoreAPI, TransportError  # re-export for convenience
from .config import ConfigError, Settings, load_settings
from .models import SLOT_COUNT, TextRecord
from .session import EditorSession, SessionBusyError, SessionObserver, SessionState

__version__ = "0.1.0"
