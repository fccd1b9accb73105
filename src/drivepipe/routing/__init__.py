"""Route matching."""

from drivepipe.routing.matcher import RouteMatch, RouteMatcher

__all__ = ["RouteMatch", "RouteMatcher"]
