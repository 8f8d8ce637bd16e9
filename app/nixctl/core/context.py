"""Process identity resolved once at startup.

Planning functions receive a :class:`HostContext` instead of looking up the
current user themselves, and copy the values they need into their actions.
"""

import grp
import os
import pwd
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class HostContext:
    """Immutable identity of the invoking user.

    When nixctl runs under sudo, the invoking user (``SUDO_USER``) is the one
    whose shell profiles are configured.

    Attributes:
        uid: Effective user id of the process.
        username: Name of the user the installation is for.
        group: Primary group name of that user.
        home: Home directory of that user.
    """

    uid: int
    username: str
    group: str
    home: Path

    @classmethod
    def detect(cls) -> "HostContext":
        """Resolve the context from the running process.

        Returns:
            HostContext for the current (or sudo-invoking) user.

        Raises:
            KeyError: If the user or group database has no entry.
        """
        uid = os.geteuid()
        sudo_user = os.environ.get("SUDO_USER")
        entry = pwd.getpwnam(sudo_user) if sudo_user else pwd.getpwuid(uid)
        group = grp.getgrgid(entry.pw_gid).gr_name
        return cls(
            uid=uid,
            username=entry.pw_name,
            group=group,
            home=Path(entry.pw_dir),
        )

    def expand_home(self, path: Path) -> Path:
        """Resolve a leading ``~`` against :attr:`home`.

        ``$HOME`` of the process is not consulted.
        """
        if path.parts and path.parts[0] == "~":
            return self.home.joinpath(*path.parts[1:])
        return path.expanduser()
