"""Silicon Craft provisioner — physical-design toolchain setup."""

__version__ = "0.1.0"
