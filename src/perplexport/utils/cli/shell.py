"""Provides a helper for executing commands with streamed output."""
import inspect
import subprocess
from typing import List

from perplexport.utils.style import ansi
from perplexport.utils.logs import report

def run(command: List[str]):
    """
    - Run a command and return its exit code
    - The command's output and error streams are connected directly to the parent process's streams.
    - Output is displayed in real-time as the command executes.
    - This blocks the caller until the command finishes, so async callers
    should hand it to a worker thread.
    """
    # Log under the caller's module name
    caller_frame = inspect.currentframe().f_back
    caller_module = inspect.getmodule(caller_frame)
    logger = report.settings(caller_module.__file__ if caller_module else __file__)

    logger.info("Executing command: %s", " ".join(command))
    print(f"{ansi.grey}{' '.join(command)}{ansi.reset}")
    process = subprocess.Popen(command)
    process.communicate()

    if process.returncode:
        logger.error("Command exited with code %s", process.returncode)
    else:
        logger.info("Command finished successfully")
    return {"returncode": process.returncode}
