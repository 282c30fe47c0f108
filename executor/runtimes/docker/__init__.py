"""Docker Engine runtime client.

Provides DockerRuntime, the ContainerRuntime implementation that talks to a
Docker daemon through the low-level Engine API client.
"""

from .runtime import DockerRuntime, default_base_url

__all__ = ["DockerRuntime", "default_base_url"]
