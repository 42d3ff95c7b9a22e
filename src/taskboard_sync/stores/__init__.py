"""
Remote document stores.

Components:
- documents.py: id generation + ordering shared by the local stores
- subscriptions.py: push (queue) and polling change streams
- memory_store.py: in-process store (tests, demos)
- sqlite_store.py: file-backed store shared by processes on one machine
- firestore_rest.py: Cloud Firestore over its REST API (httpx)
"""
