"""Finance dashboard service modules."""
