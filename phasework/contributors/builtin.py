"""
Built-in step contributors.

- echo: write a message (or every param) to the action's log
- sh: run a shell script, logging its output
- mark: finish with a chosen severity
"""

import logging
import os
import subprocess
from typing import Any, Optional, TYPE_CHECKING

from phasework.contributors.base import StepContributor
from phasework.errors import ActionFailure
from phasework.schemas import Severity

if TYPE_CHECKING:
    from phasework.context import ActionContext

logger = logging.getLogger(__name__)


class EchoContributor(StepContributor):
    """
    Write text to the action log.

    Params:
        message: Text to write. Without it, every param is written as
                 "echoing <key> == <value>".
    """

    name = "echo"
    description = "Write a message, or every param, to the action log"

    def execute(self, context: "ActionContext", params: dict[str, Any]) -> Optional[Severity]:
        if "message" in params:
            context.log(str(params["message"]))
            return None

        for key, value in params.items():
            context.log(f"echoing {key} == {value}")
        return None


class ShellContributor(StepContributor):
    """
    Run a shell script.

    Params:
        script: Script text, run with the system shell
        cwd: Optional working directory
        timeout: Optional timeout in seconds

    The action's environment (options.env plus any with_env overlays) is
    layered over the process environment. Output is written to the action
    log line by line. A non-zero exit status fails the action.
    """

    name = "sh"
    description = "Run a shell script; non-zero exit fails the action"

    def execute(self, context: "ActionContext", params: dict[str, Any]) -> Optional[Severity]:
        script = params.get("script")
        if not isinstance(script, str) or not script.strip():
            raise ActionFailure("sh requires a non-empty 'script' param")

        env = dict(os.environ)
        env.update({str(k): str(v) for k, v in context.env.items()})

        logger.debug(f"Running script for {context.log_ref}")
        try:
            result = subprocess.run(
                script,
                shell=True,
                cwd=params.get("cwd"),
                env=env,
                capture_output=True,
                text=True,
                timeout=params.get("timeout"),
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ActionFailure(f"Script timed out after {e.timeout}s")

        if result.stdout:
            context.log(result.stdout.rstrip("\n"))
        if result.stderr:
            context.log(result.stderr.rstrip("\n"))

        if result.returncode != 0:
            raise ActionFailure(f"Script exited with status {result.returncode}")
        return None


class MarkContributor(StepContributor):
    """
    Finish with the severity named by the `result` param.

    Params:
        result: Severity name (success, unstable, failure, aborted)
        message: Optional text to write first
    """

    name = "mark"
    description = "Finish with the severity named by 'result'"

    def execute(self, context: "ActionContext", params: dict[str, Any]) -> Optional[Severity]:
        if "message" in params:
            context.log(str(params["message"]))
        try:
            return Severity.from_string(str(params.get("result", "success")))
        except ValueError as e:
            raise ActionFailure(str(e))


BUILTIN_CONTRIBUTORS: tuple[type[StepContributor], ...] = (
    EchoContributor,
    ShellContributor,
    MarkContributor,
)
