"""Descriptive COVID-19 reports from JHU CSSE (world) and DXY (China) time series."""

__version__ = "0.1.0"
