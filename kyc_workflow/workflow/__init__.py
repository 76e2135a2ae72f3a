"""Pure workflow rules for documents and verification records.

Nothing in this package talks to the database, storage or the network.
Services load a record, call into these functions and persist the result.
"""
