from app.services.archive import ArchiveStore
from app.services.progress import ProgressSimulator
from app.services.session import SessionController, SessionRegistry

__all__ = ["ArchiveStore", "ProgressSimulator", "SessionController", "SessionRegistry"]
