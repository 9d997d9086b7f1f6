"""projects/ -- Projects and their memberships.

Layer rule: projects/ may import core/, auth/ (users table for foreign keys),
rbac/ and activity/. It does NOT import from api/ or tasks/.
"""
