"""Game QC Console - version lifecycle and QC decision backend."""
__version__ = "1.0.0"
