"""
Pure domain layer: period keys, status normalisation, reconciliation,
aggregation and DTOs.  Zero I/O; never imports from models/, services/ or
selectors/ (db.types is used for the Money primitives only).
"""
