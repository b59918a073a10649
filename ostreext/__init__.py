"""Build-side helpers for bootable OSTree container images: commit preparation, kernel discovery, layer packing and chunking."""

__version__ = "0.1.0"