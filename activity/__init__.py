"""activity/ -- Append-only audit ledger of state-changing actions.

Layer rule: activity/ imports core/ plus the users and projects tables for
foreign keys. It performs no authorization of its own; callers check project
read access before querying.
"""
