"""imagestore: camera image ingestion, catalog and thumbnail pipeline."""

__version__ = "1.0.0"
