"""
Local File Converter package.

Converts images between raster formats, Word documents to PDF and audio
between common encodings without leaving the machine. The domain layer
lives in `file_convert.conversion`; `webapi` and `streamlit_app` are thin
front-ends over the same orchestrator.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
