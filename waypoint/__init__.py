"""Forum sub-forum and topic indexing, archive storage layout, backups and run metrics."""

__version__ = "0.1.0"