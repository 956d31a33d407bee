"""Remote command execution with timeout and retry policy."""
import logging
import shlex
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import RunnerSettings
from .connector.base import CommandResult, Connector
from .errors import CommandError, CommandTimeoutError, RemoteConnectionError, RunnerExhaustedError
from .models import HostSpec

logger = logging.getLogger("kubeops.runner")

# The remote command may already have had side effects when it exits non-zero,
# so only failures that happen before or around the command are retried.
TRANSIENT_ERRORS = (RemoteConnectionError, CommandTimeoutError)


@dataclass(frozen=True)
class RunOptions:
    timeout: float = 300
    retries: int = 3
    retry_interval: float = 5
    sudo: bool = False

    @classmethod
    def from_settings(cls, settings: RunnerSettings) -> "RunOptions":
        return cls(timeout=settings.timeout, retries=settings.retries,
                   retry_interval=settings.retry_interval)


def sudo_wrap(command: str) -> str:
    return f"sudo -E /bin/bash -c {shlex.quote(command)}"


class Runner:
    """Executes one command on one host through a Connector-provided session."""

    def __init__(self, connector: Connector, settings: Optional[RunnerSettings] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.connector = connector
        self.defaults = RunOptions.from_settings(settings or RunnerSettings())
        self._sleep = sleep

    def run(
        self,
        host: HostSpec,
        command: str,
        *,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_interval: Optional[float] = None,
        sudo: bool = False,
        check: bool = True,
    ) -> str:
        """Run `command` on `host` and return its stripped stdout.

        Args:
            host: Target host
            command: Shell command to run
            timeout: Per-attempt deadline in seconds
            retries: Retries after a connection failure or timeout
            retry_interval: Seconds to wait between attempts
            sudo: Run the command through ``sudo -E /bin/bash -c``
            check: Raise CommandError when the command exits non-zero

        Raises:
            CommandError: the command ran and failed (never retried)
            RunnerExhaustedError: every attempt failed with a transient error
        """
        opts = replace(
            self.defaults,
            timeout=self.defaults.timeout if timeout is None else timeout,
            retries=self.defaults.retries if retries is None else retries,
            retry_interval=self.defaults.retry_interval if retry_interval is None else retry_interval,
            sudo=sudo,
        )
        final_command = sudo_wrap(command) if opts.sudo else command
        return self.run_with(host, final_command, opts, check=check).stdout.strip()

    def run_with(self, host: HostSpec, command: str, opts: RunOptions, check: bool = True) -> CommandResult:
        retrying = Retrying(
            stop=stop_after_attempt(opts.retries + 1),
            wait=wait_fixed(opts.retry_interval),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=self._log_retry(host, opts),
            sleep=self._sleep,
        )
        result = None
        try:
            for attempt in retrying:
                with attempt:
                    result = self._attempt(host, command, opts.timeout)
        except RetryError as e:
            last = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            logger.error(f"[{host.name}] Giving up after {attempts} attempt(s): {command}: {last}")
            raise RunnerExhaustedError(
                f"Failed to run command after {attempts} attempt(s): {last}",
                cause=last, attempts=attempts, host=host.name,
            ) from last

        if result.exit_code != 0 and check:
            logger.error(f"[{host.name}] Command failed with exit code {result.exit_code}: {command}\n"
                         f"Stderr: {result.stderr.strip()}")
            raise CommandError(
                f"Command exited with status {result.exit_code}: {command}: {result.stderr.strip()}",
                exit_code=result.exit_code, stdout=result.stdout, stderr=result.stderr,
                command=command, host=host.name,
            )
        logger.debug(f"[{host.name}] Command completed with exit status {result.exit_code}: {command}")
        return result

    def _attempt(self, host: HostSpec, command: str, timeout: float) -> CommandResult:
        logger.debug(f"[{host.name}] $ {command} [timeout={timeout}s]")
        with self.connector.session(host) as session:
            return session.exec(command, timeout)

    @staticmethod
    def _log_retry(host: HostSpec, opts: RunOptions) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                f"[{host.name}] Attempt {retry_state.attempt_number}/{opts.retries + 1} failed: {error}. "
                f"Retrying in {opts.retry_interval:.1f}s..."
            )
        return before_sleep
