"""Deployment modes and run reporting."""
from .strategies import (DeploymentStrategy, FullStrategy, LocalStrategy, RemoteInstanceStrategy,
                         create_strategy)

__all__ = ["DeploymentStrategy", "FullStrategy", "LocalStrategy", "RemoteInstanceStrategy", "create_strategy"]
