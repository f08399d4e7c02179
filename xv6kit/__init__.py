"""Model of a teaching kernel's file system, disk cache, log, console and tools."""

__version__ = "0.1.0"