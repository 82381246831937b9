"""Dataset gateway: upload files, run the JSONL pipeline, download artifacts."""

__version__ = "0.1.0"
