# Domain Package
"""
Entities and interfaces shared by the pool and its adapters.
"""
