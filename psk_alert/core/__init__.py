"""Core domain package for PSKAlert.

Core holds the wire codec, geospatial maths, domain models and ports,
without any socket, database or transport code.
"""
