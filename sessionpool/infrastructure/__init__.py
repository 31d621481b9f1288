# Infrastructure Package
"""
Adapters for storage, HTTP transport and the Vinted API.
"""
