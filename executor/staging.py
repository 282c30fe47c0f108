"""Host-side staging directories for execution sessions.

Each session owns one uniquely named directory holding exactly the user's
source file under the language's fixed file name. The directory is bind
mounted read-only into the container and deleted when the session ends,
whatever the outcome.
"""

from __future__ import annotations

import secrets
import shutil
import tempfile
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from executor.core.logging import ExecutorLogger

STAGING_PREFIX = "executor-"


def new_session_id() -> str:
    """Random 12-character hex token used to namespace a session."""
    return secrets.token_hex(6)


class StagingDirectory:
    """Exclusively owned staging directory for one session.

    Use as a context manager: the directory is created on entry and removed
    on exit. Removal errors are logged and swallowed so they can never mask
    the session result.

    Attributes:
        session_id: Session token embedded in the directory name
        path: Absolute host path of the directory
    """

    def __init__(
        self,
        session_id: str,
        root: str | Path | None = None,
        logger: ExecutorLogger | None = None,
    ) -> None:
        self.session_id = session_id
        base = Path(root) if root is not None else Path(tempfile.gettempdir())
        self.path = (base / f"{STAGING_PREFIX}{session_id}").resolve()
        self.logger = logger

    def create(self) -> Path:
        """Create the directory; fails if it already exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.mkdir(mode=0o755)
        # The container user is not the host user; it needs to read the mount.
        self.path.chmod(0o755)
        return self.path

    def write_source(self, file_name: str, code: str) -> Path:
        """Write code verbatim as UTF-8 under file_name.

        Raises:
            ValueError: If file_name is not a plain file name
        """
        if Path(file_name).name != file_name or file_name in ("", ".", ".."):
            raise ValueError(f"Invalid source file name: {file_name!r}")
        target = self.path / file_name
        target.write_bytes(code.encode("utf-8"))
        target.chmod(0o644)
        if self.logger is not None:
            self.logger.log_staging_created(self.session_id, str(self.path), file_name)
        return target

    def cleanup(self) -> None:
        """Recursively delete the directory, ignoring errors."""
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            if self.logger is not None:
                self.logger.log_teardown_error("staging", str(e), session_id=self.session_id)
            return
        if self.logger is not None:
            self.logger.log_staging_removed(self.session_id, str(self.path))

    def exists(self) -> bool:
        return self.path.exists()

    def __enter__(self) -> StagingDirectory:
        self.create()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()
