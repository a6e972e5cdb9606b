"""Context managers for secure resource management."""

import atexit
import os
import signal
import tempfile
from pathlib import Path
from typing import Optional


class SecureTempFile:
    """Signal-safe temporary file with guaranteed cleanup.

    The extra-vars file carries storage and vault credentials, so it is
    created with 0600 permissions and removed on normal exit, on exceptions,
    and on SIGINT/SIGTERM.
    """

    def __init__(self, prefix: str = "ctr-vars-", suffix: str = ".json"):
        self.prefix = prefix
        self.suffix = suffix
        self.path: Optional[Path] = None
        self._cleanup_registered = False
        self._original_sigint_handler = None
        self._original_sigterm_handler = None

    def __enter__(self) -> Path:
        """Create the file (mkstemp opens it 0600) and return its path."""
        fd, name = tempfile.mkstemp(prefix=self.prefix, suffix=self.suffix)
        os.close(fd)
        self.path = Path(name)

        if not self._cleanup_registered:
            atexit.register(self._cleanup)
            self._cleanup_registered = True

        self._original_sigint_handler = signal.signal(signal.SIGINT, self._signal_handler)
        self._original_sigterm_handler = signal.signal(signal.SIGTERM, self._signal_handler)

        return self.path

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._cleanup()
        self._restore_signal_handlers()
        return False

    def _cleanup(self):
        """Remove the file (idempotent)."""
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None

    def _signal_handler(self, signum, frame):
        """Handle SIGINT/SIGTERM by cleaning up and re-raising."""
        self._cleanup()
        self._restore_signal_handlers()

        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        elif signum == signal.SIGTERM:
            raise SystemExit(128 + signum)

    def _restore_signal_handlers(self):
        if self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)
        if self._original_sigterm_handler is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm_handler)
