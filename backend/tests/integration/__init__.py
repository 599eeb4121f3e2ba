"""
Integration tests package.

Exercises the Flask app and the management CLI end to end: JWT auth,
controllers, repositories and the database together.
"""
