"""
spawnsql - templated SQL migrations with pinned components.

Migration scripts are Jinja2 templates whose output expressions are
formatted as SQL. Components they include can be pinned into a
content-addressed store so a migration renders the same SQL forever.
"""

__version__ = "0.1.0"
