"""Repository modules for negotiation state and reference data."""

__all__ = [
    "negotiation_store",
    "reference_data_repo",
]
