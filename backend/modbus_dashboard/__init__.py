"""
Modbus TCP Monitoring Dashboard - Backend

REST API in front of a single Modbus TCP device. Register reads and
writes are delegated to pymodbus through a connection manager that
owns the device connection.
"""

__version__ = "1.0.0"
