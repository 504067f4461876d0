from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import db.crud as crud
from db.models import Session
from db.remote import RemoteClient
from db.storage import PersistenceAdapter
from utils import config


def build_store(notify: Optional[Callable[[str], None]] = None) -> PersistenceAdapter:
    """Adapter wired from configuration; no remote when ORDERMGR_API_BASE_URL is empty."""
    remote = None
    if config.API_BASE_URL:
        remote = RemoteClient(config.API_BASE_URL, timeout=config.API_TIMEOUT)
    return PersistenceAdapter(remote=remote, notify=notify)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - store: persistence adapter every workflow call goes through
      - session: the logged-in actor, None until login and after logout
    """

    store: PersistenceAdapter = field(default_factory=build_store)
    session: Optional[Session] = None

    @property
    def is_admin(self) -> bool:
        return bool(self.session and self.session.is_admin)

    async def start_session(
        self, role: str, username: str, password: str
    ) -> Optional[Session]:
        """Log in; returns the session if the credentials were accepted."""
        self.session = await crud.login(self.store, role, username, password)
        return self.session

    async def resume_session(self) -> Optional[Session]:
        """Pick up a session persisted by a previous run."""
        self.session = await crud.restore_session(self.store)
        return self.session

    async def end_session(self) -> None:
        """
        End the current session if one exists.
        This is only called upon logging out
        """
        if self.session is None:
            return
        await crud.logout(self.store)
        self.session = None
