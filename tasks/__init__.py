"""tasks/ -- Tasks, labels, comments, and time logs.

Thin consumers of the authorization core: each service asks the
PermissionGate before mutating and reports to the AuditLog afterwards.

Layer rule: tasks/ may import core/, auth/, rbac/, projects/, and activity/.
It does NOT import from api/.
"""
