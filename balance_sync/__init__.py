# ============================================================================
# Balance Sync v1.0.0
# Exchange balance and transfer synchronization
# ============================================================================

__version__ = '1.0.0'
