"""Application artifacts: repository checkout, JAR, container image and their delivery."""
from .image import ImageBuilder
from .local_app import LocalAppRunner
from .remote import RemoteDeployer
from .repository import RepositoryManager

__all__ = ["ImageBuilder", "LocalAppRunner", "RemoteDeployer", "RepositoryManager"]
