"""rollupctl — rollup deployment pipelines."""

__version__ = "0.1.0"
