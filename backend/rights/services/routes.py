"""Route path helpers used by route-level permission checks."""

from rights.models.catalog import ActionKey

# Final path segments that imply an action other than View
SEGMENT_ACTIONS: dict[str, ActionKey] = {
    "add": ActionKey.CREATE,
    "new": ActionKey.CREATE,
    "create": ActionKey.CREATE,
    "upload": ActionKey.CREATE,
    "edit": ActionKey.UPDATE,
    "update": ActionKey.UPDATE,
    "delete": ActionKey.DELETE,
}


def normalize_route_path(route: str | None) -> str:
    """Strip query string, fragment, whitespace and trailing slash; ensure a leading slash."""
    if not route:
        return "/"

    path = route.split("?", 1)[0].split("#", 1)[0].strip()
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    if not path.startswith("/"):
        path = "/" + path
    return path


def route_matches(route: str, prefix: str) -> bool:
    """True when ``route`` is ``prefix`` or lies underneath it."""
    route = normalize_route_path(route)
    prefix = normalize_route_path(prefix)
    if route == prefix or prefix == "/":
        return True
    return route.startswith(prefix + "/")


def infer_action_for_route(route: str) -> ActionKey:
    """Derive the action a route performs from its last segment, defaulting to View."""
    segment = normalize_route_path(route).rsplit("/", 1)[-1].lower()
    if segment in SEGMENT_ACTIONS:
        return SEGMENT_ACTIONS[segment]
    if segment.startswith("delete"):
        return ActionKey.DELETE
    return ActionKey.VIEW
