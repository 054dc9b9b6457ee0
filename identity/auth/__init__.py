"""
Account authentication for the web client.

Design goals:
- Two credential paths: local email/password and Google sign-in.
- One account per email; credential types are never silently linked.
- Opaque `userId:token` session credential stored server-side.
"""
