"""auth/ -- Identity, credential, and session package for Taskboard.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, rbac/, projects/, tasks/, or activity/.
api/ imports from auth/, not the other way around.
"""
