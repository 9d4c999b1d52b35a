from funcengine.visibility.resolver import VisibilityResolver

__all__ = ["VisibilityResolver"]
