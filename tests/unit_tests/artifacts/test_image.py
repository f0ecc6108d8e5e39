from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from deploy_engine.artifacts.image import ImageBuilder, render_dockerfile
from deploy_engine.core.exceptions import ArtifactError
from deploy_engine.settings import Settings

REPOSITORY_URI = "123456789012.dkr.ecr.us-east-1.amazonaws.com/java-app-repo"
DIGEST = "sha256:" + "ab" * 32


class FakeRegistry:
    def __init__(self, digest=DIGEST, login_error=None):
        self.digest = digest
        self.login_error = login_error
        self.digest_queries = []

    def get_login(self):
        if self.login_error:
            raise self.login_error
        return "AWS", "secret-token", "https://123456789012.dkr.ecr.us-east-1.amazonaws.com"

    def image_digest(self, repository_name, tag):
        self.digest_queries.append((repository_name, tag))
        return self.digest


@pytest.fixture
def settings(tmp_path):
    clone_dir = tmp_path / "temp-repo"
    clone_dir.mkdir()
    return Settings(_env_file=None, clone_dir=str(clone_dir), runtime="container", health_path="/health")


def test_dockerfile_template_matches_runtime_contract():
    dockerfile = render_dockerfile("build/libs/project.jar", port=9000, health_path="/health")

    assert "FROM eclipse-temurin:11-jre" in dockerfile
    assert "COPY build/libs/project.jar /app/project.jar" in dockerfile
    assert "EXPOSE 9000" in dockerfile
    assert "curl -f http://localhost:9000/health" in dockerfile
    assert "USER appuser" in dockerfile


def test_build_and_push_returns_digest_reference(settings, fake_run):
    registry = FakeRegistry()
    builder = ImageBuilder(settings, registry, run=fake_run)

    reference = builder.build_and_push(REPOSITORY_URI, tag="a1b2c3d")

    assert reference == f"{REPOSITORY_URI}@{DIGEST}"
    build = fake_run.commands("docker build")[0]
    assert f"{REPOSITORY_URI}:a1b2c3d" in build and f"{REPOSITORY_URI}:latest" in build
    assert [cmd[-1] for cmd in fake_run.commands("docker push")] == [
        f"{REPOSITORY_URI}:a1b2c3d",
        f"{REPOSITORY_URI}:latest",
    ]
    login_index = fake_run.calls.index(fake_run.commands("docker login")[0])
    assert fake_run.kwargs[login_index]["input"] == "secret-token"
    assert registry.digest_queries == [("java-app-repo", "a1b2c3d")]
    assert (Path(settings.clone_dir) / "Dockerfile").exists()


def test_existing_dockerfile_is_kept(settings, fake_run):
    dockerfile = Path(settings.clone_dir) / "Dockerfile"
    dockerfile.write_text("FROM scratch\n")

    ImageBuilder(settings, FakeRegistry(), run=fake_run).build_and_push(REPOSITORY_URI)

    assert dockerfile.read_text() == "FROM scratch\n"
    assert len(fake_run.commands("docker push")) == 1


def test_login_failure_is_artifact_error(settings, fake_run):
    error = ClientError({"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, "GetAuthorizationToken")
    builder = ImageBuilder(settings, FakeRegistry(login_error=error), run=fake_run)

    with pytest.raises(ArtifactError, match="authorization token"):
        builder.build_and_push(REPOSITORY_URI)

    assert fake_run.commands("docker push") == []


def test_missing_digest_fails(settings, fake_run):
    builder = ImageBuilder(settings, FakeRegistry(digest=None), run=fake_run)

    with pytest.raises(ArtifactError, match="not found in ECR"):
        builder.build_and_push(REPOSITORY_URI)
