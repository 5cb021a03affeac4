"""
Stock Trend Forecast

A quantitative pipeline for multi-day price forecasting and trading signal generation.
"""

__version__ = "0.1.0"
