"""mini-arch: minimal Arch Linux installer with optional LUKS2 root encryption."""

__version__ = "0.1.0"
