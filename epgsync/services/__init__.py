"""
Services package for EPG Sync Service

This package contains the sync pipeline: listing fetch and parsing, schedule
generation, reconciliation, batch application and the record store.
"""
