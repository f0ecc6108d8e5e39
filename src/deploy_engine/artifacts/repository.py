"""Application repository: clone over SSH and make sure the JAR exists."""
import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

from deploy_engine.core.exceptions import ArtifactError
from deploy_engine.settings import Settings
from deploy_engine.utils.decorators import log_operation, retry

from .commands import Runner, run_command

logger = logging.getLogger(__name__)

GITHUB_SSH_HOST = "git@github.com"


class RepositoryManager:
    """Clone the application repository and produce its executable JAR."""

    def __init__(self, settings: Settings, run: Runner = subprocess.run,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.run = run
        self.sleep = sleep
        self.clone_dir = Path(settings.clone_dir)

    @property
    def jar(self) -> Path:
        return self.clone_dir / self.settings.jar_path

    def check_github_ssh(self) -> bool:
        """GitHub answers ``ssh -T`` with exit code 1 even when authentication works."""
        try:
            result = run_command(
                ["ssh", "-o", "BatchMode=yes", "-o", "StrictHostKeyChecking=accept-new", "-T", GITHUB_SSH_HOST],
                run=self.run,
                timeout=30,
                description="GitHub SSH check",
                check=False,
            )
        except ArtifactError as e:
            logger.warning(f"⚠️ Could not check GitHub SSH access: {e}")
            return False
        if "successfully authenticated" in (result.stderr or "") + (result.stdout or ""):
            logger.info("✅ GitHub SSH authentication works")
            return True
        logger.warning("⚠️ GitHub SSH authentication might fail. Please ensure SSH keys are configured.")
        return False

    @log_operation("Clone application repository")
    def clone(self) -> Path:
        """Fresh clone into ``clone_dir``, retried with a fixed delay."""
        url = self.settings.github_repo_url
        if not url:
            raise ArtifactError("GITHUB_REPO_URL is not set; cannot clone the repository")

        @retry(max_attempts=self.settings.clone_attempts, delay=self.settings.clone_retry_delay,
               exceptions=(ArtifactError,), logger_name=__name__, sleep=self.sleep)
        def _clone_once():
            if self.clone_dir.exists():
                logger.info(f"Repository directory {self.clone_dir} exists, removing...")
                shutil.rmtree(self.clone_dir)
            run_command(["git", "clone", url, str(self.clone_dir)], run=self.run,
                        description=f"git clone {url}")

        logger.info(f"📥 Cloning repository: {url}")
        _clone_once()
        logger.info(f"✅ Repository cloned into {self.clone_dir}")
        return self.clone_dir

    def build_command(self) -> Optional[List[str]]:
        """Build tool invocation for the checkout, or None when no build file is present."""
        if (self.clone_dir / "pom.xml").exists():
            return ["mvn", "-q", "-B", "package", "-DskipTests"]
        if (self.clone_dir / "gradlew").exists():
            return ["./gradlew", "build", "-x", "test"]
        if (self.clone_dir / "build.gradle").exists() or (self.clone_dir / "build.gradle.kts").exists():
            return ["gradle", "build", "-x", "test"]
        return None

    @log_operation("Ensure application JAR")
    def ensure_jar(self) -> Path:
        if self.jar.exists():
            logger.info(f"✅ JAR found at {self.jar}")
            return self.jar

        command = self.build_command()
        if command is None:
            raise ArtifactError(f"JAR file not found at {self.jar} and no Maven or Gradle build to produce it")

        logger.warning(f"JAR file not found at {self.jar}, building with {command[0]}...")
        run_command(command, run=self.run, cwd=str(self.clone_dir), description=f"{command[0]} build")
        if not self.jar.exists():
            raise ArtifactError(f"Build finished but JAR file is still missing at {self.jar}")
        logger.info(f"✅ Built {self.jar}")
        return self.jar

    def commit_sha(self) -> Optional[str]:
        """Short commit id of the checkout, used to tag images."""
        result = run_command(["git", "rev-parse", "--short", "HEAD"], run=self.run, cwd=str(self.clone_dir),
                             description="git rev-parse", check=False)
        sha = (result.stdout or "").strip()
        return sha if result.returncode == 0 and sha else None

    def prepare(self, skip_clone: bool = False) -> Path:
        """Clone (unless skipped) and return the path of the JAR."""
        if skip_clone:
            logger.info(f"Skipping clone, using existing checkout in {self.clone_dir}")
            if not self.clone_dir.is_dir():
                raise ArtifactError(f"--skip-clone given but {self.clone_dir} does not exist")
        else:
            self.check_github_ssh()
            self.clone()
        return self.ensure_jar()
