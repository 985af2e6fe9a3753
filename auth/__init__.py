"""auth/ -- Credential verification against operator-defined SQLite templates.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
plugin.py imports from auth/, not the other way around.
"""
