"""Terraform-style provisioning for Azure Stream Analytics reference inputs."""

__version__ = "0.1.0"
