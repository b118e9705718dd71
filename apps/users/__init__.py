"""Users app package.

Defines the custom user model with roles (player, facility owner, admin).
Use ``apps.users.models.CustomUser`` as the AUTH_USER_MODEL throughout the
project.
"""
