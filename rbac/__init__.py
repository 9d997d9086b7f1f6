"""rbac/ -- Role catalog and project-scoped authorization for Taskboard.

Layer rule: rbac/ imports stdlib, third-party libraries, and core/.
The PermissionGate reads project ownership and membership rows through a
ProjectStore passed to its constructor; it never imports projects/ at runtime.
"""
