from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger("zeppelin.poller")


@dataclass(slots=True)
class CommandResult:
    argv: Sequence[str]
    stdout: str = ""
    stderr: str = ""
    return_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.return_code == 0


class CommandRunner:
    """Runs fleet CLI commands in the Gas Town root with a bounded timeout."""

    def __init__(self, *, root: str | Path, timeout_seconds: float = 10.0) -> None:
        self.root = Path(root)
        self.timeout_seconds = max(1.0, float(timeout_seconds))

    def run(self, argv: Sequence[str]) -> CommandResult:
        argv = [str(arg) for arg in argv]
        try:
            completed = subprocess.run(
                argv,
                cwd=str(self.root),
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout_seconds,
                shell=False,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(argv=argv, error=f"timed out after {self.timeout_seconds:g}s")
        except OSError as exc:
            return CommandResult(argv=argv, error=repr(exc))

        result = CommandResult(
            argv=argv,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            return_code=completed.returncode,
        )
        if completed.returncode != 0:
            result.error = f"exit status {completed.returncode}"
        return result

    def output(self, *argv: str) -> Optional[str]:
        """Trimmed stdout, or None when the command failed."""
        result = self.run(argv)
        if not result.ok:
            logger.warning(
                "COMMAND_FAILED argv=%s error=%s stderr=%s",
                " ".join(result.argv),
                result.error,
                result.stderr.strip()[:200],
            )
            return None
        return result.stdout.strip()
