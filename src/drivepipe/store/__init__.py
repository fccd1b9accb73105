"""Document and blob storage."""

from drivepipe.store.blobs import BlobInfo, BlobStore, LocalBlobStore, verify_signed_url
from drivepipe.store.documents import DocumentSnapshot, DocumentStore, Filter, OrderBy, Transaction
from drivepipe.store.memory import InMemoryDocumentStore

__all__ = [
    "BlobInfo",
    "BlobStore",
    "DocumentSnapshot",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "LocalBlobStore",
    "OrderBy",
    "Transaction",
    "verify_signed_url",
]
