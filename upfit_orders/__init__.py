"""
Upfit order tracker backend.

Order lifecycle management for commercial-vehicle builds: fulfillment
pipeline tracking, ETA consistency and stock/VIN identifier assignment.
"""

__version__ = "1.0.0"
