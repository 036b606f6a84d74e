"""Collection names and per-collection schema hints (schema-in-code).

Document stores have no DDL. These constants are the single source of truth
for collection names and for the few schema facts the stores need:
which fields are unique, which fields hold arrays (so equality filters on
them mean "contains") and which hold timestamps.

Example:
    store = InMemoryEntityStore(unique_fields=UNIQUE_FIELDS)
    await store.create(COLLECTION_USERS, {...})
"""

COLLECTION_TASKS = "tasks"
COLLECTION_USERS = "users"

# Firestore only: guard documents that enforce UNIQUE_FIELDS.
COLLECTION_UNIQUE_KEYS = "unique_keys"

UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {
    COLLECTION_USERS: ("email",),
}

ARRAY_FIELDS: dict[str, tuple[str, ...]] = {
    COLLECTION_USERS: ("pending_task_ids",),
}

# Firestore only: fields stored as timestamps, so query operands given as ISO
# strings or epoch milliseconds are converted before being sent to the server.
DATETIME_FIELDS: dict[str, tuple[str, ...]] = {
    COLLECTION_TASKS: ("deadline", "created_at"),
    COLLECTION_USERS: ("created_at",),
}
