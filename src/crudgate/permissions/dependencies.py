import re
from typing import Callable, Optional

from fastapi import Request

from crudgate.api.exceptions import BadRequestException, ForbiddenException, UnauthorizedException
from crudgate.interface.permissions import Action, AuthUser, CheckResult
from crudgate.permissions.checker import PermissionChecker
import logging

logger = logging.getLogger(__name__)

RESERVED_SEGMENTS = {"auth", "admin", "files", "health", "api", "v1", "v2"}

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

CHECK_RESULT_STATE = "permission_result"


def method_to_action(method: str) -> Action:
    method = method.upper()
    if method == "POST":
        return Action.create
    if method in ("PUT", "PATCH"):
        return Action.update
    if method == "DELETE":
        return Action.delete
    return Action.read


def _looks_like_id(segment: str) -> bool:
    return segment.isdigit() or bool(_UUID_RE.match(segment))


def extract_collection_from_path(path: str) -> str:
    """Best effort collection name for ``/api/v1/{collection}[/{id}]`` style paths"""
    parts = [p for p in path.strip("/").split("/") if p]

    for i, part in enumerate(parts):
        if part in ("api", "v1") and i + 1 < len(parts) and parts[i + 1] not in RESERVED_SEGMENTS:
            return parts[i + 1]

    if parts:
        last = parts[-1]
        if len(parts) > 1 and _looks_like_id(last):
            return parts[-2]
        if last not in RESERVED_SEGMENTS:
            return last

    return ""


def get_check_result(request: Request) -> Optional[CheckResult]:
    return getattr(request.state, CHECK_RESULT_STATE, None)


class PermissionDependency:
    """
    FastAPI dependency running a permission check for the current request.

        posts_read = PermissionDependency(checker, get_user, collection="posts", action=Action.read)

        @app.get("/api/v1/posts")
        def list_posts(permission: CheckResult = Depends(posts_read)):
            ...

    Without a fixed ``collection`` the name is taken from the ``collection``
    path parameter, then from the URL path; without a fixed ``action`` it
    follows the HTTP method. The result is also stored on ``request.state``.
    """

    def __init__(self, checker: PermissionChecker,
                 get_user: Callable[[Request], Optional[AuthUser]],
                 collection: Optional[str] = None,
                 action: Optional[Action] = None):
        self.checker = checker
        self.get_user = get_user
        self.collection = collection
        self.action = Action(action) if action is not None else None

    def __call__(self, request: Request) -> Optional[CheckResult]:
        user = self.get_user(request)
        if user is None:
            raise UnauthorizedException(detail="authentication required")

        action = self.action or method_to_action(request.method)

        collection = (
            self.collection
            or request.path_params.get("collection")
            or extract_collection_from_path(request.url.path)
        )
        if not collection:
            if self.action is not None:
                raise BadRequestException(detail="collection not specified")
            return None

        result = self.checker.check(user, collection, action)
        if not result.allowed:
            logger.debug(f"Denied {action.value} on {collection} for user {user.id}: {result.reason}")
            raise ForbiddenException(detail=result.reason)

        setattr(request.state, CHECK_RESULT_STATE, result)
        return result
