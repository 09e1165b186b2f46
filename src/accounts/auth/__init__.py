"""Authentication primitives.

- password: bcrypt hashing and verification
- jwt: access/refresh token minting and verification (separate secrets)
- dependencies: FastAPI dependencies that wire services and resolve the
  current user from a cookie or bearer token
"""
