"""Call and data-access graph of a polyglot codebase with reachability queries."""

from reachgraph.project import ProjectGraph, close_project, open_project

__all__ = ["ProjectGraph", "open_project", "close_project"]
