"""
Command-line tools for fleet-inventory-reconciler
"""
