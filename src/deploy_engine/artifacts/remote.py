"""
Ship the application to a running EC2 instance over SSH.

The instance's user data only installs Java and Docker; the JAR (or the
container image) is delivered and (re)started here on every run.
"""
import logging
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional

from deploy_engine.core.exceptions import ArtifactError
from deploy_engine.core.models import Resource
from deploy_engine.core.waiter import ReadinessWaiter, status_is
from deploy_engine.settings import Settings

from .commands import Runner, run_command

logger = logging.getLogger(__name__)

REACHABLE = "reachable"
BOOTSTRAPPING = "bootstrapping"
UNREACHABLE = "unreachable"
# Written by cloud-init once every boot stage, user data included, has run
BOOT_FINISHED = "/var/lib/cloud/instance/boot-finished"
# ssh reserves this exit status for its own connection errors
SSH_ERROR = 255
REMOTE_LOG = "/var/log/java-app/app.log"
CONTAINER_NAME = "java-app"


class RemoteDeployer:
    def __init__(self, settings: Settings, waiter: ReadinessWaiter, run: Runner = subprocess.run):
        self.settings = settings
        self.waiter = waiter
        self.run = run

    def _ssh_options(self) -> List[str]:
        return [
            "-i", str(self.settings.private_key_path),
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "ConnectTimeout=10",
            "-o", "BatchMode=yes",
        ]

    def _target(self, host: str) -> str:
        return f"{self.settings.ssh_user}@{host}"

    def ssh(self, host: str, command: str, description: str = "ssh", check: bool = True,
            timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return run_command(["ssh", *self._ssh_options(), self._target(host), command],
                           run=self.run, description=description, check=check, timeout=timeout)

    def probe_ssh(self, host: str) -> str:
        """Report whether ``host`` accepts SSH and has finished its bootstrap."""
        try:
            result = self.ssh(host, f"test -f {BOOT_FINISHED}", description="ssh probe", check=False, timeout=30)
        except ArtifactError as e:
            logger.debug(f"SSH probe to {host} failed: {e}")
            return UNREACHABLE
        if result.returncode == 0:
            return REACHABLE
        if result.returncode == SSH_ERROR:
            return UNREACHABLE
        return BOOTSTRAPPING

    def wait_for_ssh(self, resource: Resource, host: str) -> None:
        """Poll until sshd on ``host`` accepts our key and cloud-init is done.

        A fresh instance answers SSH before its user data has installed Java
        and created the app directory, so reachability alone is not enough.

        Raises:
            ReadinessTimeoutError: SSH or the bootstrap never finished; last status says which
        """
        logger.info(f"⏳ Waiting for SSH and instance bootstrap on {host}...")
        self.waiter.await_ready(
            resource,
            status_is(REACHABLE),
            interval=self.settings.ssh_wait_interval,
            max_attempts=self.settings.ssh_wait_attempts,
            status_fn=lambda r: self.probe_ssh(host),
            mark_ready=False,
        )
        logger.info(f"✅ SSH is reachable and bootstrap finished on {host}")

    def deploy_jar(self, host: str, jar: Path) -> None:
        """Copy the JAR and restart the JVM."""
        if not jar.exists():
            raise ArtifactError(f"JAR file not found at {jar}")
        app_dir = self.settings.remote_app_dir
        remote_jar = f"{app_dir}/project.jar"

        logger.info(f"📤 Copying {jar} to {host}:{remote_jar}")
        run_command(["scp", *self._ssh_options(), str(jar), f"{self._target(host)}:{remote_jar}"],
                    run=self.run, description="scp")

        start = (
            f"pkill -f 'java -jar' || true; "
            f"cd {shlex.quote(app_dir)} && "
            f"nohup java -Xmx512m -Xms256m -XX:+UseG1GC -Djava.awt.headless=true -jar project.jar "
            f"> {REMOTE_LOG} 2>&1 < /dev/null &"
        )
        self.ssh(host, start, description="remote java start")
        logger.info(f"✅ Java application (re)started on {host}")

    def deploy_container(self, host: str, image_ref: str) -> None:
        """Pull ``image_ref`` on the instance and replace the running container."""
        registry = image_ref.split("/")[0]
        port = self.settings.app_port
        commands = [
            f"aws ecr get-login-password --region {shlex.quote(self.settings.aws_region)} | "
            f"docker login --username AWS --password-stdin {shlex.quote(registry)}",
            f"docker pull {shlex.quote(image_ref)}",
            f"(docker rm -f {CONTAINER_NAME} || true)",
            f"docker run -d --name {CONTAINER_NAME} --restart unless-stopped -p {port}:{port} {shlex.quote(image_ref)}",
        ]
        logger.info(f"🐳 Deploying container {image_ref} on {host}")
        self.ssh(host, " && ".join(commands), description="remote container start")
        logger.info(f"✅ Container {CONTAINER_NAME} running on {host}")

    def app_log_tail(self, host: str, lines: int = 50) -> List[str]:
        if self.settings.runtime == "container":
            command = f"docker logs --tail {lines} {CONTAINER_NAME}"
        else:
            command = f"tail -n {lines} {REMOTE_LOG}"
        result = self.ssh(host, command, description="remote log tail", check=False, timeout=30)
        return (result.stdout or "").splitlines() + (result.stderr or "").splitlines()
