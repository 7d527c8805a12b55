"""Load-profile, solar-generation and ROI calculation core for commercial properties."""

__version__ = "0.3.0"
