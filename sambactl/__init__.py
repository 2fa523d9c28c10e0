"""Flash firmware images through SAM-BA style serial bootloaders."""

__version__ = "0.1.0"
