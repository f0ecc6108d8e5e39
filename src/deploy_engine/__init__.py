"""
Deployment tooling for a Java application on AWS.

Resolves, waits for and binds EC2, ALB and ECR resources, ships the
application JAR or container image, and verifies it over HTTP.
"""

__version__ = "0.1.0"
