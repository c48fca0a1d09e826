"""Running terraform commands with retries."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, Any

log = logging.getLogger(__name__)

MAX_TERRAFORM_RETRIES = 10
RETRY_DELAY_SECONDS = 5.0

_Stream = Any  # a file object, a file descriptor, a subprocess constant or None


class TerraformError(RuntimeError):
    """A terraform command failed."""


def _run_once(command: Sequence[str], directory, stdout: _Stream, stderr: _Stream) -> bool:
    try:
        result = subprocess.run(
            list(command), cwd=directory, stdout=stdout, stderr=stderr, check=False
        )
    except OSError as err:
        log.warning("Cannot execute %s in %s: %s", " ".join(command), directory, err)
        return False
    return result.returncode == 0


def run_with_retries(
    command: Sequence[str],
    directory: str | os.PathLike[str],
    stdout: _Stream,
    stderr: _Stream,
    retries: int,
) -> None:
    """Run ``command`` up to ``retries`` times until it succeeds."""
    for attempt in range(1, retries + 1):
        if _run_once(command, directory, stdout, stderr):
            return
        log.warning(
            "Retry %d/%d of %s in %s failed", attempt, retries, " ".join(command), directory
        )
        if attempt < retries:
            time.sleep(RETRY_DELAY_SECONDS * attempt)
    raise TerraformError(
        f"failed to execute cmd: {' '.join(command)}: gave up after {retries} retries"
    )


@dataclass
class Terraform:
    """Runs terraform in a directory of .tf files."""

    directory: str | os.PathLike[str]
    stdout: IO[Any] | int | None = None
    stderr: IO[Any] | int | None = None
    executable: Sequence[str] = ("terraform",)

    def _execute(self, *args: str) -> None:
        command = [*self.executable, *args]
        if _run_once(command, self.directory, self.stdout, self.stderr):
            return
        log.warning("Error encountered while executing %s from %s", " ".join(command), self.directory)
        run_with_retries(command, self.directory, self.stdout, self.stderr, MAX_TERRAFORM_RETRIES)

    def init(self) -> None:
        """Run ``terraform init``."""
        self._execute("init")

    def apply(self) -> None:
        """Run ``terraform apply --auto-approve``."""
        self._execute("apply", "--auto-approve")

    def destroy(self) -> None:
        """Run ``terraform destroy --auto-approve``."""
        self._execute("destroy", "--auto-approve")

    def output(self, resource_name: str) -> str:
        """Return the combined output of ``terraform output -json <resource_name>``."""
        command = [*self.executable, "output", "-json", resource_name]
        try:
            result = subprocess.run(
                command,
                cwd=self.directory,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as err:
            raise TerraformError(f"cannot execute {' '.join(command)}: {err}") from err
        text = result.stdout.decode("utf-8", errors="replace")
        if result.returncode != 0:
            raise TerraformError(
                f"{' '.join(command)} exited with {result.returncode}: {text}"
            )
        return text