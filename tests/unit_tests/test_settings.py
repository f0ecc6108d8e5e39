import pytest
from pydantic import ValidationError

from deploy_engine.settings import Settings, get_settings, load_settings


def test_env_file_is_read(tmp_path, monkeypatch):
    monkeypatch.delenv("ALB_NAME", raising=False)
    env_file = tmp_path / "deploy.env"
    env_file.write_text("ALB_NAME=shop-alb\nAPP_PORT=8080\nLOG_LEVEL=debug\n")

    settings = load_settings(str(env_file))

    assert settings.alb_name == "shop-alb"
    assert settings.app_port == 8080
    assert settings.log_level == "DEBUG"


def test_environment_overrides_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / "deploy.env"
    env_file.write_text("ALB_NAME=from-file\n")
    monkeypatch.setenv("ALB_NAME", "from-env")

    assert load_settings(str(env_file)).alb_name == "from-env"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_invalid_runtime_and_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, runtime="war")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")


def test_health_path_gets_leading_slash():
    assert Settings(_env_file=None, health_path="health").health_path == "/health"


def test_missing_for_mode(tmp_path):
    settings = Settings(_env_file=None, clone_dir=str(tmp_path / "repo"), ec2_ami_id="ami-123",
                        subnet_id_1="subnet-a")

    assert settings.missing_for_mode("local") == ["GITHUB_REPO_URL"]
    assert settings.missing_for_mode("remote-instance") == [
        "EC2_KEY_PAIR_NAME", "SECURITY_GROUP_ID", "GITHUB_REPO_URL",
    ]
    assert "SUBNET_ID_2" in settings.missing_for_mode("full")
    assert "VPC_ID" in settings.missing_for_mode("full")
    with pytest.raises(ValueError):
        settings.missing_for_mode("kubernetes")


def test_existing_checkout_stands_in_for_repo_url(tmp_path):
    jar = tmp_path / "repo" / "build" / "libs" / "project.jar"
    jar.parent.mkdir(parents=True)
    jar.write_text("jar")

    settings = Settings(_env_file=None, clone_dir=str(tmp_path / "repo"))

    assert settings.missing_for_mode("local") == []


def test_environment_dict_masks_secrets():
    settings = Settings(_env_file=None, aws_access_key_id="AKIAEXAMPLE", aws_secret_access_key="secret")

    env = settings.get_environment_dict()

    assert env["AWS_ACCESS_KEY_ID"] == "****"
    assert "secret" not in env.values()


def test_subnet_ids_and_key_path(tmp_path):
    settings = Settings(_env_file=None, subnet_id_1="subnet-a", subnet_id_2="subnet-b",
                        ec2_key_pair_name="deployer")

    assert settings.subnet_ids == ["subnet-a", "subnet-b"]
    assert settings.private_key_path.name == "deployer.pem"


@pytest.mark.parametrize("field", [
    "instance_wait_attempts", "alb_wait_attempts", "target_health_attempts",
    "ssh_wait_attempts", "local_health_attempts", "endpoint_health_attempts", "clone_attempts",
])
def test_attempt_budgets_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_intervals_cannot_be_negative():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, instance_wait_interval=-1)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, probe_timeout=0)
    assert Settings(_env_file=None, ssh_wait_interval=0).ssh_wait_interval == 0


def test_budgets_are_validated_from_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("INSTANCE_WAIT_ATTEMPTS", raising=False)
    env_file = tmp_path / "deploy.env"
    env_file.write_text("INSTANCE_WAIT_ATTEMPTS=0\n")

    with pytest.raises(ValidationError):
        load_settings(str(env_file))
