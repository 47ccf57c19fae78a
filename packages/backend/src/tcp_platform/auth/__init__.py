"""Authentication and authorization.

Two kinds of principal:
1. Users → email/password → signed session cookie (process-wide key)
2. Agents → registration token → secret → bearer token signed with the
   agent's own key

Sessions are resolved into a UserContext (context.py) and checked
against the static role tables in rbac.py.
"""
