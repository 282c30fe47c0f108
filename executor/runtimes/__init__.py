"""Container runtime implementations.

Each subdirectory contains a ContainerRuntime backend for a specific
container engine.
"""
