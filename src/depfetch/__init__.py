"""depfetch - registry dependency browser and tarball downloader."""

__version__ = "0.1.0"
