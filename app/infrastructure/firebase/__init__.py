"""Firestore integration over the REST API (httpx + google-auth)."""

from app.infrastructure.firebase.client import create_firestore_client
from app.infrastructure.firebase.entity_store import FirestoreEntityStore

__all__ = [
    "FirestoreEntityStore",
    "create_firestore_client",
]
