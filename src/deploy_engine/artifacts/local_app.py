"""Run the application JAR on this machine."""
import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Callable, List

from deploy_engine.core.exceptions import ArtifactError
from deploy_engine.settings import Settings
from deploy_engine.utils.log_setup import tail_lines

from .commands import Runner, run_command

logger = logging.getLogger(__name__)


class LocalAppRunner:
    def __init__(self, settings: Settings, run: Runner = subprocess.run,
                 popen: Callable[..., subprocess.Popen] = subprocess.Popen,
                 kill: Callable[[int, int], None] = os.kill,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.run = run
        self.popen = popen
        self.kill = kill
        self.sleep = sleep
        self.log_file = Path(settings.app_log_file)
        self.pid_file = Path(settings.app_pid_file)

    def free_port(self, port: int) -> List[int]:
        """Terminate whatever listens on ``port``. Returns the signalled PIDs."""
        try:
            result = run_command(["lsof", "-t", f"-i:{port}"], run=self.run, description="lsof", check=False)
        except ArtifactError as e:
            logger.warning(f"⚠️ Cannot check port {port}: {e}")
            return []

        pids = [int(line) for line in (result.stdout or "").split() if line.strip().isdigit()]
        if not pids:
            return []

        logger.warning(f"Port {port} is already in use, attempting to kill existing process...")
        for pid in pids:
            try:
                self.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                logger.debug(f"Process {pid} already exited")
        self.sleep(2)
        return pids

    def start(self, jar: Path) -> int:
        """Start ``java -jar`` detached, logging to the app log. Returns the PID."""
        if not jar.exists():
            raise ArtifactError(f"JAR file not found at {jar}")

        self.free_port(self.settings.app_port)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"🚀 Starting Java application locally: java -jar {jar}")
        try:
            with open(self.log_file, "a", encoding="utf-8") as log:
                process = self.popen(
                    ["java", "-jar", str(jar)],
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except FileNotFoundError as e:
            raise ArtifactError("Required command 'java' not found. Please install it.") from e

        self.pid_file.write_text(str(process.pid), encoding="utf-8")
        logger.info(f"Java application started with PID: {process.pid} (logs: {self.log_file})")
        return process.pid

    def diagnostics(self, lines: int = 50) -> List[str]:
        return tail_lines(self.log_file, lines)
