"""Container image build and push to ECR."""
import logging
import subprocess
from pathlib import Path
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from deploy_engine.aws.registry import ImageRegistry
from deploy_engine.core.exceptions import ArtifactError
from deploy_engine.settings import Settings
from deploy_engine.utils.decorators import log_operation

from .commands import Runner, run_command

logger = logging.getLogger(__name__)

DOCKERFILE_TEMPLATE = """FROM eclipse-temurin:11-jre

WORKDIR /app

RUN apt-get update && apt-get install -y curl \\
    && rm -rf /var/lib/apt/lists/*

RUN groupadd -r appuser && useradd -r -g appuser appuser

COPY {jar_path} /app/project.jar
RUN chown -R appuser:appuser /app
USER appuser

EXPOSE {port}

HEALTHCHECK --interval=30s --timeout=10s --start-period=60s --retries=3 \\
    CMD curl -f http://localhost:{port}{health_path} || exit 1

ENV JAVA_OPTS="-Xmx512m -Xms256m -XX:+UseG1GC -Djava.awt.headless=true"

CMD ["sh", "-c", "java $JAVA_OPTS -jar project.jar"]
"""


def render_dockerfile(jar_path: str, port: int = 9000, health_path: str = "/") -> str:
    return DOCKERFILE_TEMPLATE.format(jar_path=jar_path, port=port, health_path=health_path)


class ImageBuilder:
    """Build the application image from the checkout and push it to ECR."""

    def __init__(self, settings: Settings, registry: ImageRegistry, run: Runner = subprocess.run):
        self.settings = settings
        self.registry = registry
        self.run = run
        self.context_dir = Path(settings.clone_dir)

    def ensure_dockerfile(self) -> Path:
        dockerfile = self.context_dir / "Dockerfile"
        if dockerfile.exists():
            logger.info(f"Using repository Dockerfile: {dockerfile}")
            return dockerfile
        dockerfile.write_text(
            render_dockerfile(self.settings.jar_path, self.settings.app_port, self.settings.health_path),
            encoding="utf-8",
        )
        logger.info(f"📝 Generated Dockerfile at {dockerfile}")
        return dockerfile

    @log_operation("Build and push application image")
    def build_and_push(self, repository_uri: str, tag: Optional[str] = None) -> str:
        """Build, tag (``tag`` and ``latest``), push, and return ``repo@sha256:...``."""
        tag = tag or self.settings.image_tag
        tags = [tag] if tag == "latest" else [tag, "latest"]
        dockerfile = self.ensure_dockerfile()

        build_cmd = ["docker", "build", "-f", str(dockerfile)]
        for t in tags:
            build_cmd += ["-t", f"{repository_uri}:{t}"]
        build_cmd.append(str(self.context_dir))
        logger.info(f"🔨 Building image {repository_uri}:{tag}")
        run_command(build_cmd, run=self.run, description="docker build")

        self._login()
        for t in tags:
            logger.info(f"📤 Pushing {repository_uri}:{t}")
            run_command(["docker", "push", f"{repository_uri}:{t}"], run=self.run, description="docker push")

        digest = self._digest(tag)
        reference = f"{repository_uri}@{digest}"
        logger.info(f"✅ Pushed image: {reference}")
        return reference

    def _login(self) -> None:
        try:
            username, password, endpoint = self.registry.get_login()
        except (ClientError, BotoCoreError) as e:
            raise ArtifactError(f"Could not get ECR authorization token: {e}") from e
        run_command(
            ["docker", "login", "--username", username, "--password-stdin", endpoint],
            run=self.run,
            input=password,
            description="docker login",
        )
        logger.info("ECR login successful")

    def _digest(self, tag: str) -> str:
        try:
            digest = self.registry.image_digest(self.settings.ecr_repository, tag)
        except (ClientError, BotoCoreError) as e:
            raise ArtifactError(f"Could not read digest of pushed image: {e}") from e
        if not digest:
            raise ArtifactError(f"Pushed image {self.settings.ecr_repository}:{tag} not found in ECR")
        return digest
