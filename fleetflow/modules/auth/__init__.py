"""Authentication — JWT validation and the explicit Actor identity."""

from fleetflow.modules.auth.auth import Actor, get_current_actor, require_role
