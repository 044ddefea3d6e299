"""Canonical ID generation utilities."""

import uuid

# Namespace for deterministic finding/contradiction ids
RESEARCH_QA_NAMESPACE = uuid.UUID("6f1c1c52-8d0a-5b4e-9a51-0d3c5e2f7a11")


def stable_uuid(*parts: str) -> str:
    """Deterministic UUID string derived from the given parts."""
    return str(uuid.uuid5(RESEARCH_QA_NAMESPACE, "\x1f".join(parts)))


def new_id() -> str:
    """Random UUID4 string for entities created once (questions, versions)."""
    return str(uuid.uuid4())
