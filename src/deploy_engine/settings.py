# src/deploy_engine/settings.py
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEPLOYMENT_MODES = ["local", "remote-instance", "full"]
RUNTIMES = ["jar", "container"]

# Settings each mode cannot run without (field name -> env var shown to the user)
_REQUIRED_BY_MODE: Dict[str, Dict[str, str]] = {
    "local": {},
    "remote-instance": {
        "ec2_ami_id": "EC2_AMI_ID",
        "ec2_key_pair_name": "EC2_KEY_PAIR_NAME",
        "subnet_id_1": "SUBNET_ID_1",
        "security_group_id": "SECURITY_GROUP_ID",
    },
    "full": {
        "ec2_ami_id": "EC2_AMI_ID",
        "ec2_key_pair_name": "EC2_KEY_PAIR_NAME",
        "vpc_id": "VPC_ID",
        "subnet_id_1": "SUBNET_ID_1",
        "subnet_id_2": "SUBNET_ID_2",
        "security_group_id": "SECURITY_GROUP_ID",
    },
}


class Settings(BaseSettings):
    """
    Single source of truth for deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from deploy_engine.settings import get_settings
        settings = get_settings()
        alb_name = settings.alb_name
    """

    # Application Settings
    app_name: str = Field(default="java-app", description="Name tag for the EC2 instance")
    github_repo_url: Optional[str] = Field(
        default=None,
        description="SSH URL of the application repository (git@github.com:org/repo.git)"
    )
    clone_dir: str = Field(default="temp-repo", description="Directory the repository is cloned into")
    jar_path: str = Field(default="build/libs/project.jar", description="JAR path inside the repository")
    app_port: int = Field(default=9000, description="Port the Java application listens on")
    health_path: str = Field(default="/", description="Path probed by health checks")
    runtime: str = Field(default="jar", description="How the app runs on the instance: jar or container")

    # AWS Core Settings
    aws_region: str = Field(default="ap-south-1", alias="AWS_REGION")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    aws_endpoint_url: Optional[str] = Field(default=None, alias="AWS_ENDPOINT_URL")

    # Network
    vpc_id: Optional[str] = None
    subnet_id_1: Optional[str] = None
    subnet_id_2: Optional[str] = None
    security_group_id: Optional[str] = None
    ingress_cidr: str = Field(default="0.0.0.0/0", description="CIDR allowed to reach the app port")

    # EC2 Configuration
    ec2_ami_id: Optional[str] = None
    ec2_instance_type: str = "t2.micro"
    ec2_key_pair_name: Optional[str] = None
    ssh_user: str = "ec2-user"
    ssh_key_path: Optional[str] = Field(
        default=None,
        description="Private key for SSH; defaults to ~/.ssh/<EC2_KEY_PAIR_NAME>.pem"
    )
    remote_app_dir: str = "/opt/java-app"

    # Load Balancer Configuration
    alb_name: str = "java-app-alb"
    target_group_name: str = "java-app-targets"
    listener_port: int = 80
    environment_tag: str = "production"
    health_check_interval_seconds: int = 30
    health_check_timeout_seconds: int = 5
    healthy_threshold_count: int = 2
    unhealthy_threshold_count: int = 3

    # ECR Configuration
    ecr_repository: str = Field(default="java-app-repo", description="ECR repository name")
    image_tag: str = Field(default="latest", description="Tag pushed alongside 'latest'")

    # Readiness budgets (fixed interval, no backoff)
    instance_wait_attempts: int = Field(default=40, ge=1)
    instance_wait_interval: float = Field(default=15.0, ge=0)
    alb_wait_attempts: int = Field(default=40, ge=1)
    alb_wait_interval: float = Field(default=15.0, ge=0)
    target_health_attempts: int = Field(default=20, ge=1)
    target_health_interval: float = Field(default=15.0, ge=0)
    ssh_wait_attempts: int = Field(default=30, ge=1)
    ssh_wait_interval: float = Field(default=10.0, ge=0)
    local_health_attempts: int = Field(default=30, ge=1)
    local_health_interval: float = Field(default=2.0, ge=0)
    endpoint_health_attempts: int = Field(default=10, ge=1)
    endpoint_health_interval: float = Field(default=15.0, ge=0)
    probe_timeout: float = Field(default=5.0, gt=0)
    health_concurrency: bool = False

    # Clone retries
    clone_attempts: int = Field(default=3, ge=1)
    clone_retry_delay: float = Field(default=5.0, ge=0)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="/tmp/deployment-logs", description="Deployment log directory")
    app_log_file: str = Field(default="/tmp/java-app.log", description="Local application log")
    app_pid_file: str = Field(default="/tmp/java-app.pid", description="Local application PID file")

    @field_validator("runtime")
    @classmethod
    def validate_runtime(cls, v):
        """Validate runtime is one of the allowed values."""
        if v not in RUNTIMES:
            raise ValueError(f"Invalid runtime: {v}. Must be one of {RUNTIMES}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        """Upper-case and validate the log level."""
        v = v.upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Valid levels: {sorted(valid_levels)}")
        return v

    @field_validator("health_path")
    @classmethod
    def ensure_leading_slash(cls, v):
        return v if v.startswith("/") else f"/{v}"

    @property
    def subnet_ids(self) -> List[str]:
        """Configured load balancer subnets, in order."""
        return [s for s in (self.subnet_id_1, self.subnet_id_2) if s]

    @property
    def private_key_path(self) -> Path:
        """SSH private key used for remote-instance deployments."""
        if self.ssh_key_path:
            return Path(self.ssh_key_path).expanduser()
        return Path.home() / ".ssh" / f"{self.ec2_key_pair_name}.pem"

    @property
    def local_jar(self) -> Path:
        """Path of the JAR inside the cloned repository."""
        return Path(self.clone_dir) / self.jar_path

    def missing_for_mode(self, mode: str) -> List[str]:
        """Return env var names required by ``mode`` that are not set."""
        if mode not in _REQUIRED_BY_MODE:
            raise ValueError(f"Invalid mode: {mode}. Use one of {DEPLOYMENT_MODES}")
        missing = [env for field, env in _REQUIRED_BY_MODE[mode].items() if not getattr(self, field)]
        # A previously cloned checkout can stand in for the repository URL
        if not self.github_repo_url and not self.local_jar.exists():
            missing.append("GITHUB_REPO_URL")
        return missing

    def get_environment_dict(self) -> Dict[str, str]:
        """Configuration as displayed by ``show-config``. Secrets are masked."""
        return {
            "APP_NAME": self.app_name,
            "AWS_REGION": self.aws_region,
            "AWS_ACCESS_KEY_ID": "****" if self.aws_access_key_id else "",
            "GITHUB_REPO_URL": self.github_repo_url or "",
            "JAR_PATH": self.jar_path,
            "APP_PORT": str(self.app_port),
            "RUNTIME": self.runtime,
            "VPC_ID": self.vpc_id or "",
            "SUBNET_ID_1": self.subnet_id_1 or "",
            "SUBNET_ID_2": self.subnet_id_2 or "",
            "SECURITY_GROUP_ID": self.security_group_id or "",
            "EC2_AMI_ID": self.ec2_ami_id or "",
            "EC2_INSTANCE_TYPE": self.ec2_instance_type,
            "EC2_KEY_PAIR_NAME": self.ec2_key_pair_name or "",
            "ALB_NAME": self.alb_name,
            "TARGET_GROUP_NAME": self.target_group_name,
            "ECR_REPOSITORY": self.ecr_repository,
            "LOG_LEVEL": self.log_level,
            "LOG_DIR": self.log_dir,
        }

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Reload settings, reading ``env_file`` instead of the default ``.env``."""
    get_settings.cache_clear()
    if env_file:
        return Settings(_env_file=env_file)
    return get_settings()
